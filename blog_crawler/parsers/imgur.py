"""Imgur media-link parser."""

from __future__ import annotations

import re

from . import MediaLinkParser

_VIDEO_ALIASES = {"gifv": "mp4"}


class ImgurParser(MediaLinkParser):
    """Extract direct ``i.imgur.com`` links from direct and single-image page URLs.

    Album and gallery pages need an API round-trip and are left alone.
    """

    host = "imgur"
    _PATTERNS = (
        re.compile(
            r"https?://i\.imgur\.com/(?P<id>[A-Za-z0-9]{5,8})\.(?P<ext>jpe?g|png|gif|gifv|mp4|webm)\b",
            re.IGNORECASE,
        ),
        re.compile(r"https?://(?:www\.|m\.)?imgur\.com/(?P<id>[A-Za-z0-9]{5,8})(?![\w./])"),
    )

    def _normalize(self, match: re.Match[str]) -> str | None:
        image_id = match.group("id")
        extension = (match.groupdict().get("ext") or "jpg").lower()
        extension = _VIDEO_ALIASES.get(extension, extension)
        return f"https://i.imgur.com/{image_id}.{extension}"
