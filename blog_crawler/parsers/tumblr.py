"""Parser for media hosted on the blog platform itself."""

from __future__ import annotations

import html
import re

from . import MediaLinkParser

_IMAGE_PATTERN = re.compile(
    r"https?://(?:\d+\.)?media\.tumblr\.com/[^\s\"'<>()]+?\.(?:jpe?g|png|gif|pnj|webp)\b",
    re.IGNORECASE,
)
_VIDEO_PATTERN = re.compile(
    r"https?://(?:va\.media|vtt?|ve)\.tumblr\.com/[^\s\"'<>()]+?\.mp4\b",
    re.IGNORECASE,
)
_SIZED_PATH = re.compile(r"/s(?P<width>\d+)x(?P<height>\d+)(?:_c\d+)?/")
_LEGACY_SIZE = re.compile(r"_(?P<width>\d{2,4})(?P<ext>\.\w+)$")


def _size_key(url: str) -> tuple[str, int]:
    """Return ``(rendition-independent key, width)`` for a media URL."""

    sized = _SIZED_PATH.search(url)
    if sized:
        return _SIZED_PATH.sub("/", url, count=1), int(sized.group("width"))
    legacy = _LEGACY_SIZE.search(url)
    if legacy:
        return _LEGACY_SIZE.sub(r"\g<ext>", url), int(legacy.group("width"))
    return url, 0


class TumblrParser(MediaLinkParser):
    """Extract inline images and videos, keeping only the widest rendition of each."""

    host = "tumblr"

    def extract(self, text: str) -> list[str]:
        if not text:
            return []
        unescaped = html.unescape(text)

        best: dict[str, tuple[int, str]] = {}
        order: list[str] = []
        for match in _IMAGE_PATTERN.finditer(unescaped):
            url = match.group(0)
            if "/avatar_" in url:
                continue
            key, width = _size_key(url)
            current = best.get(key)
            if current is None:
                order.append(key)
                best[key] = (width, url)
            elif width > current[0]:
                best[key] = (width, url)

        found = [best[key][1] for key in order]
        for match in _VIDEO_PATTERN.finditer(unescaped):
            url = match.group(0)
            if url not in found:
                found.append(url)
        return found
