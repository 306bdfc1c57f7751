"""Gfycat media-link parser."""

from __future__ import annotations

import re

from . import MediaLinkParser


class GfycatParser(MediaLinkParser):
    host = "gfycat"
    _PATTERNS = (
        re.compile(
            r"https?://(?:giant|zippy|fat|thumbs)\.gfycat\.com/(?P<name>[A-Za-z]+)(?:-[\w-]+)?\.(?P<ext>webm|mp4|gif)\b"
        ),
        re.compile(r"https?://(?:www\.)?gfycat\.com/(?:gifs/detail/|ifr/)?(?P<name>[A-Za-z]{6,})(?![\w.])"),
    )

    def _normalize(self, match: re.Match[str]) -> str | None:
        extension = match.groupdict().get("ext") or "webm"
        return f"https://giant.gfycat.com/{match.group('name')}.{extension}"
