"""Metadata renderers: turn one remote post record into persisted bytes.

Each record schema ships a text renderer (flat ``Key: value`` lines) and a
structured renderer (one NDJSON line preserving the record as received).
The renderer is picked once per target from its ``metadata_format``.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Mapping, Protocol

from ..targets import MetadataFormat, UnsupportedFormatError
from . import api, svc


class MetadataSchema(str, Enum):
    API = "api"
    SVC = "svc"


class MetadataRenderer(Protocol):
    extension: str

    def render(self, raw_record: Mapping[str, object]) -> bytes:
        ...


_RENDERERS: dict[tuple[MetadataSchema, MetadataFormat], Callable[[], MetadataRenderer]] = {
    (MetadataSchema.API, MetadataFormat.TEXT): api.ApiTextRenderer,
    (MetadataSchema.API, MetadataFormat.STRUCTURED): api.ApiJsonRenderer,
    (MetadataSchema.SVC, MetadataFormat.TEXT): svc.SvcTextRenderer,
    (MetadataSchema.SVC, MetadataFormat.STRUCTURED): svc.SvcJsonRenderer,
}

_RECORD_PARSERS = {
    MetadataSchema.API: api.ApiPost.from_record,
    MetadataSchema.SVC: svc.SvcPost.from_record,
}


def resolve_renderer(schema: MetadataSchema, metadata_format: object) -> MetadataRenderer:
    """Return the renderer for ``schema`` in ``metadata_format``."""

    if not isinstance(metadata_format, MetadataFormat):
        raise UnsupportedFormatError(metadata_format)
    try:
        factory = _RENDERERS[(schema, metadata_format)]
    except KeyError as exc:
        raise UnsupportedFormatError(metadata_format) from exc
    return factory()


def parse_post(schema: MetadataSchema, raw_record: Mapping[str, object]):
    """Return the schema's post view (``ApiPost`` or ``SvcPost``) of a raw record."""

    return _RECORD_PARSERS[schema](raw_record)


__all__ = ["MetadataRenderer", "MetadataSchema", "parse_post", "resolve_renderer"]
