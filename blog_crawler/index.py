"""Index of already-downloaded files, used to skip redundant fetches."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models import Base, DownloadedFile, IndexInfo

from .config import CrawlerConfig
from .targets import Target, TargetIdentity, TargetVariant

LOGGER = logging.getLogger(__name__)
_INDEX_SUFFIX = ".sqlite"


class IndexLoadError(RuntimeError):
    """Raised when an index exists but cannot be read."""


@dataclass(frozen=True, slots=True)
class IndexEntry:
    filename: str
    variant: TargetVariant


class Index(Mapping[str, IndexEntry]):
    """Read-only mapping of downloaded identifier to its file entry."""

    def __init__(self, name: str, variant: TargetVariant, entries: Mapping[str, IndexEntry] | None = None) -> None:
        self._name = name
        self._variant = variant
        self._entries = MappingProxyType(dict(entries or {}))

    @classmethod
    def empty(cls, name: str, variant: TargetVariant) -> "Index":
        return cls(name, variant)

    @property
    def name(self) -> str:
        return self._name

    @property
    def variant(self) -> TargetVariant:
        return self._variant

    def __getitem__(self, identifier: str) -> IndexEntry:
        return self._entries[identifier]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"<Index(name={self._name!r}, variant={self._variant.value!r}, entries={len(self)})>"


class IndexStore:
    """SQLite-backed on-disk index, one database file per target."""

    def __init__(self, config: CrawlerConfig) -> None:
        self._config = config
        self._write_lock = threading.Lock()
        self._write_engines: dict[Path, Engine] = {}

    def index_path(self, identity: TargetIdentity, variant: TargetVariant) -> Path:
        return self._config.index_path(identity, variant)

    def read_index(self, identity: TargetIdentity, variant: TargetVariant) -> Index:
        path = self.index_path(identity, variant)
        if not path.exists():
            LOGGER.debug("No index at %s; treating %s as new", path, identity.name)
            return Index.empty(identity.name, variant)

        engine = create_engine(f"sqlite:///{path}")
        try:
            with engine.connect() as conn:
                rows = conn.execute(
                    select(DownloadedFile.identifier, DownloadedFile.filename, DownloadedFile.variant)
                ).all()
        except SQLAlchemyError as exc:
            raise IndexLoadError(f"Unable to read index {path}: {exc}") from exc
        finally:
            engine.dispose()

        entries: dict[str, IndexEntry] = {}
        for identifier, filename, raw_variant in rows:
            try:
                entry_variant = TargetVariant(raw_variant)
            except ValueError as exc:
                raise IndexLoadError(f"Index {path} holds unknown variant {raw_variant!r}") from exc
            entries[identifier] = IndexEntry(filename=filename, variant=entry_variant)
        return Index(identity.name, variant, entries)

    def iter_index_keys(self) -> Iterator[tuple[str, TargetVariant]]:
        """Yield ``(name, variant)`` for every index file on disk."""

        if not self._config.index_dir.exists():
            return
        for path in sorted(self._config.index_dir.glob(f"*{_INDEX_SUFFIX}")):
            stem = path.name[: -len(_INDEX_SUFFIX)]
            name, _, raw_variant = stem.rpartition(".")
            try:
                variant = TargetVariant(raw_variant)
            except ValueError:
                LOGGER.warning("Ignoring index file with unrecognised name %s", path)
                continue
            if name:
                yield name, variant

    def enumerate_all_indices(self) -> list[tuple[str, TargetVariant, Index]]:
        return [
            (name, variant, self.read_index(TargetIdentity(name), variant))
            for name, variant in self.iter_index_keys()
        ]

    # Write path ------------------------------------------------------------------
    def record_download(self, target: Target, identifier: str, filename: str) -> bool:
        """Persist a newly downloaded identifier; return ``False`` if already present."""

        with self._write_lock:
            session_factory = sessionmaker(bind=self._writer_engine(target))
            with session_factory() as session:
                existing = session.execute(
                    select(DownloadedFile.id).where(DownloadedFile.identifier == identifier)
                ).first()
                if existing is not None:
                    return False
                session.add(
                    DownloadedFile(
                        identifier=identifier,
                        filename=filename,
                        variant=target.variant.value,
                    )
                )
                session.commit()
                return True

    def _writer_engine(self, target: Target) -> Engine:
        path = self.index_path(target.identity, target.variant)
        engine = self._write_engines.get(path)
        if engine is not None:
            return engine

        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(f"sqlite:///{path}")
        Base.metadata.create_all(engine)
        with sessionmaker(bind=engine)() as session:
            if session.execute(select(IndexInfo.id)).first() is None:
                session.add(
                    IndexInfo(
                        target_name=target.identity.name,
                        variant=target.variant.value,
                        target_id=target.identity.target_id,
                    )
                )
                session.commit()
        self._write_engines[path] = engine
        return engine

    def close(self) -> None:
        with self._write_lock:
            for engine in self._write_engines.values():
                engine.dispose()
            self._write_engines.clear()


class IndexRegistry:
    """Process-wide, read-only view of every target's index.

    Built once at startup with :meth:`populate`; newly downloaded identifiers
    go to :class:`IndexStore` and are not reflected here until the next run.
    """

    def __init__(
        self,
        entries: Iterable[tuple[str, TargetVariant, Index]] = (),
        failures: Mapping[tuple[str, TargetVariant], str] | None = None,
    ) -> None:
        self._indices = MappingProxyType({(name, variant): index for name, variant, index in entries})
        self._failures = MappingProxyType(dict(failures or {}))

    @classmethod
    def populate(cls, store: IndexStore) -> "IndexRegistry":
        entries: list[tuple[str, TargetVariant, Index]] = []
        failures: dict[tuple[str, TargetVariant], str] = {}
        for name, variant in store.iter_index_keys():
            try:
                entries.append((name, variant, store.read_index(TargetIdentity(name), variant)))
            except IndexLoadError as exc:
                LOGGER.error("Failed to load index for %s (%s): %s", name, variant.value, exc)
                failures[(name, variant)] = str(exc)
        LOGGER.info("Loaded %d indices into the shared registry", len(entries))
        return cls(entries, failures)

    def __len__(self) -> int:
        return len(self._indices)

    def lookup(self, name: str, variant: TargetVariant) -> Index | None:
        failure = self._failures.get((name, variant))
        if failure is not None:
            raise IndexLoadError(failure)
        return self._indices.get((name, variant))


class IndexLoader:
    def __init__(self, store: IndexStore, registry: IndexRegistry | None = None) -> None:
        self._store = store
        self._registry = registry

    def load(self, target: Target, load_all: bool) -> Index:
        if load_all:
            if self._registry is None:
                raise IndexLoadError("Shared index registry requested but not populated")
            index = self._registry.lookup(target.identity.name, target.variant)
            if index is None:
                return Index.empty(target.identity.name, target.variant)
            return index
        return self._store.read_index(target.identity, target.variant)
