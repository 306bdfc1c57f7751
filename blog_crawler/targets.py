"""Crawl target descriptors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .config import ConfigurationError


class UnsupportedTargetError(ConfigurationError):
    """Raised when a target variant has no matching pipeline."""

    def __init__(self, variant: object) -> None:
        super().__init__(f"Target variant {variant!r} is not supported")
        self.variant = variant


class UnsupportedFormatError(ConfigurationError):
    """Raised when a metadata format has no matching renderer."""

    def __init__(self, metadata_format: object) -> None:
        super().__init__(f"Metadata format {metadata_format!r} is not supported")
        self.metadata_format = metadata_format


class TargetVariant(str, Enum):
    PUBLIC_BLOG = "public-blog"
    PRIVATE_BLOG = "private-blog"
    LIKED_FEED = "liked-feed"
    SEARCH_RESULTS = "search-results"
    TAG_SEARCH_RESULTS = "tag-search-results"

    @classmethod
    def parse(cls, value: "str | TargetVariant") -> "TargetVariant":
        try:
            return cls(value)
        except ValueError as exc:
            raise UnsupportedTargetError(value) from exc

    @property
    def has_metadata_stage(self) -> bool:
        return self in (TargetVariant.PUBLIC_BLOG, TargetVariant.PRIVATE_BLOG)


class MetadataFormat(str, Enum):
    TEXT = "text"
    STRUCTURED = "structured"

    @classmethod
    def parse(cls, value: "str | MetadataFormat") -> "MetadataFormat":
        try:
            return cls(value)
        except ValueError as exc:
            raise UnsupportedFormatError(value) from exc


@dataclass(frozen=True, slots=True)
class TargetIdentity:
    name: str
    target_id: int = 0


@dataclass(frozen=True, slots=True)
class Target:
    """A configured crawl subject.

    For blog and liked-feed variants ``identity.name`` is the blog name; for
    the search variants it is the search phrase or tag.
    """

    variant: TargetVariant
    identity: TargetIdentity
    metadata_format: MetadataFormat = MetadataFormat.TEXT

    @classmethod
    def from_values(
        cls,
        variant: str,
        name: str,
        *,
        target_id: int = 0,
        metadata_format: str = MetadataFormat.TEXT.value,
    ) -> "Target":
        cleaned = name.strip()
        if not cleaned:
            raise ConfigurationError("Target name must not be empty")
        return cls(
            variant=TargetVariant.parse(variant),
            identity=TargetIdentity(name=cleaned, target_id=target_id),
            metadata_format=MetadataFormat.parse(metadata_format),
        )

    @property
    def name(self) -> str:
        return self.identity.name
