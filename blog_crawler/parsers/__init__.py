"""Media-link parsers for embedded off-site and on-site media."""

from __future__ import annotations

import html
import re
from typing import Iterable, Sequence


class MediaLinkParser:
    """Base interface for host-specific media-link extractors.

    Subclasses list their URL patterns in ``_PATTERNS`` and turn each match
    into a direct download URL in ``_normalize``. Parsers keep no state
    between calls and may be shared across threads and pipelines.
    """

    host: str = ""
    _PATTERNS: tuple[re.Pattern[str], ...] = ()

    def extract(self, text: str) -> list[str]:
        if not text:
            return []
        unescaped = html.unescape(text)
        found: list[str] = []
        for pattern in self._PATTERNS:
            for match in pattern.finditer(unescaped):
                url = self._normalize(match)
                if url and url not in found:
                    found.append(url)
        return found

    def _normalize(self, match: re.Match[str]) -> str | None:
        return match.group(0)


class MediaLinkParserSet:
    """Fixed collection of parsers run against every post body."""

    def __init__(self, parsers: Sequence[MediaLinkParser]) -> None:
        self._parsers = tuple(parsers)

    def __iter__(self):
        return iter(self._parsers)

    def __len__(self) -> int:
        return len(self._parsers)

    @property
    def hosts(self) -> list[str]:
        return [parser.host for parser in self._parsers]

    def extract_all(self, text: str) -> list[str]:
        return merge_unique(parser.extract(text) for parser in self._parsers)


def merge_unique(groups: Iterable[Iterable[str]]) -> list[str]:
    """Flatten URL groups preserving first-seen order."""

    merged: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for url in group:
            if url in seen:
                continue
            seen.add(url)
            merged.append(url)
    return merged


def build_media_parser_set() -> MediaLinkParserSet:
    """Return the parser set shared by every pipeline."""

    return _DEFAULT_PARSER_SET


def _build_default_parser_set() -> MediaLinkParserSet:
    from .filehosts import FILE_HOST_PARSERS
    from .gfycat import GfycatParser
    from .imgur import ImgurParser
    from .tumblr import TumblrParser

    return MediaLinkParserSet([TumblrParser(), ImgurParser(), GfycatParser(), *FILE_HOST_PARSERS])


_DEFAULT_PARSER_SET = _build_default_parser_set()


__all__ = ["MediaLinkParser", "MediaLinkParserSet", "build_media_parser_set", "merge_unique"]
