"""Paginated remote sources feeding the producer stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Protocol
from urllib.parse import quote

from bs4 import BeautifulSoup

from .http_client import HttpSession, TransportError

LOGGER = logging.getLogger(__name__)

API_BASE_URL = "https://api.tumblr.com/v2"
WEB_BASE_URL = "https://www.tumblr.com"

_POST_SELECTORS = ("article", "li.post", "div.post")
_NEXT_PAGE_SELECTORS = ("a#next_page_link", "a[rel='next']", "a.next")


@dataclass(slots=True)
class SourcePage:
    """One page of remote results.

    ``records`` carries JSON post records; ``fragments`` carries raw HTML of
    posts that are only available rendered.
    """

    records: list[Mapping[str, object]] = field(default_factory=list)
    fragments: list[str] = field(default_factory=list)
    has_more: bool = False


class PostSource(Protocol):
    def fetch_page(self, page_number: int) -> SourcePage:
        ...


def _response_body(payload: Mapping[str, object], url: str) -> Mapping[str, object]:
    body = payload.get("response")
    if not isinstance(body, Mapping):
        raise TransportError(f"Response from {url} has no 'response' object", url=url)
    return body


def _post_list(value: object) -> list[Mapping[str, object]]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]


class ApiPostsSource:
    """Public blog posts through the v2 API, paged by offset."""

    def __init__(self, session: HttpSession, blog_name: str, *, api_key: str | None, page_size: int = 50) -> None:
        self._session = session
        self._blog_name = blog_name
        self._api_key = api_key
        self._page_size = max(1, min(page_size, 50))

    @property
    def url(self) -> str:
        return f"{API_BASE_URL}/blog/{self._blog_name}.tumblr.com/posts"

    def fetch_page(self, page_number: int) -> SourcePage:
        offset = page_number * self._page_size
        params: dict[str, object] = {"offset": offset, "limit": self._page_size, "reblog_info": "true"}
        if self._api_key:
            params["api_key"] = self._api_key
        body = _response_body(self._session.fetch_json(self.url, params=params), self.url)
        posts = _post_list(body.get("posts"))
        total = body.get("total_posts")
        if isinstance(total, int):
            has_more = bool(posts) and offset + len(posts) < total
        else:
            has_more = len(posts) == self._page_size
        return SourcePage(records=posts, has_more=has_more)


class SvcPostsSource:
    """Hidden blog posts through the dashboard endpoint; needs login cookies."""

    def __init__(self, session: HttpSession, blog_name: str, *, page_size: int = 20) -> None:
        self._session = session
        self._blog_name = blog_name
        self._page_size = max(1, min(page_size, 20))

    @property
    def url(self) -> str:
        return f"{WEB_BASE_URL}/svc/indash_blog"

    def fetch_page(self, page_number: int) -> SourcePage:
        offset = page_number * self._page_size
        headers = {
            "X-Requested-With": "XMLHttpRequest",
            "Referer": f"{WEB_BASE_URL}/dashboard/blog/{self._blog_name}",
        }
        params = {
            "tumblelog_name_or_id": self._blog_name,
            "limit": self._page_size,
            "offset": offset,
            "should_bypass_safemode": "true",
        }
        body = _response_body(self._session.fetch_json(self.url, headers=headers, params=params), self.url)
        posts = _post_list(body.get("posts"))
        return SourcePage(records=posts, has_more=len(posts) == self._page_size)


def split_post_fragments(html: str) -> list[str]:
    """Split a rendered page into per-post HTML fragments."""

    soup = BeautifulSoup(html, "html.parser")
    for selector in _POST_SELECTORS:
        posts = soup.select(selector)
        if posts:
            return [str(post) for post in posts]
    body = soup.body or soup
    text = str(body).strip()
    return [text] if text else []


def has_next_page(html: str) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    return any(soup.select_one(selector) is not None for selector in _NEXT_PAGE_SELECTORS)


class LikedPostsSource:
    """Rendered "liked by" pages of a blog."""

    def __init__(self, session: HttpSession, blog_name: str) -> None:
        self._session = session
        self._blog_name = blog_name

    def page_url(self, page_number: int) -> str:
        return f"{WEB_BASE_URL}/liked/by/{self._blog_name}/page/{page_number + 1}"

    def fetch_page(self, page_number: int) -> SourcePage:
        html = self._session.fetch_text(self.page_url(page_number))
        fragments = split_post_fragments(html)
        return SourcePage(fragments=fragments, has_more=bool(fragments) and has_next_page(html))


class SearchPostsSource:
    """Keyword search results, served as JSON-wrapped rendered HTML."""

    def __init__(self, session: HttpSession, query: str) -> None:
        self._session = session
        self._query = query

    def page_url(self, page_number: int) -> str:
        return f"{WEB_BASE_URL}/search/{quote(self._query, safe='')}/post_page/{page_number + 1}"

    def fetch_page(self, page_number: int) -> SourcePage:
        url = self.page_url(page_number)
        headers = {"X-Requested-With": "XMLHttpRequest"}
        body = _response_body(self._session.fetch_json(url, headers=headers), url)
        posts_html = body.get("posts_html")
        if not isinstance(posts_html, str) or not posts_html.strip():
            return SourcePage()
        return SourcePage(fragments=split_post_fragments(posts_html), has_more=True)


class TaggedPostsSource:
    """Tag search through the v2 API, paged backwards by timestamp."""

    def __init__(self, session: HttpSession, tag: str, *, api_key: str | None) -> None:
        self._session = session
        self._tag = tag
        self._api_key = api_key
        self._before: int | None = None

    @property
    def url(self) -> str:
        return f"{API_BASE_URL}/tagged"

    def fetch_page(self, page_number: int) -> SourcePage:
        params: dict[str, object] = {"tag": self._tag}
        if self._api_key:
            params["api_key"] = self._api_key
        if self._before is not None:
            params["before"] = self._before
        payload = self._session.fetch_json(self.url, params=params)
        posts = _post_list(payload.get("response"))
        timestamps = [int(post["timestamp"]) for post in posts if isinstance(post.get("timestamp"), int)]
        if not timestamps:
            return SourcePage(records=posts, has_more=False)
        oldest = min(timestamps)
        has_more = self._before is None or oldest < self._before
        self._before = oldest
        return SourcePage(records=posts, has_more=has_more)
