"""Parsers for simple file hosts that serve media at a stable direct URL."""

from __future__ import annotations

import re

from . import MediaLinkParser


class DirectFileHostParser(MediaLinkParser):
    """Match ``<scheme>://<host>/<name>.<ext>`` links for one file host."""

    def __init__(self, host: str, domain_pattern: str) -> None:
        self.host = host
        self._PATTERNS = (
            re.compile(rf"https?://{domain_pattern}/[\w-]+\.[A-Za-z0-9]{{2,5}}\b"),
        )


class WebmshareParser(MediaLinkParser):
    """webmshare.com pages map onto a single .webm file per id."""

    host = "webmshare"
    _PATTERNS = (
        re.compile(r"https?://(?:www\.)?webmshare\.com/(?:play/)?(?P<id>[A-Za-z0-9]+)(?![\w.])"),
    )

    def _normalize(self, match: re.Match[str]) -> str | None:
        return f"https://s1.webmshare.com/{match.group('id')}.webm"


FILE_HOST_PARSERS: tuple[MediaLinkParser, ...] = (
    WebmshareParser(),
    DirectFileHostParser("mixtape", r"my\.mixtape\.moe"),
    DirectFileHostParser("uguu", r"(?:a\.)?uguu\.se"),
    DirectFileHostParser("safemoe", r"(?:a\.|i\.)?safe\.moe"),
    DirectFileHostParser("lolisafe", r"(?:[\w-]+\.)?lolisafe\.moe"),
    DirectFileHostParser("catbox", r"files\.catbox\.moe"),
)
