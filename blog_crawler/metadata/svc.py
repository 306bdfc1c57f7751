"""Renderers for posts returned by the dashboard ``svc`` endpoint.

These posts use content blocks (``{"type": "image", "media": [...]}``)
rather than the flat ``photos``/``body`` fields of the public API.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Mapping

from .api import RecordError, list_field

_WHITESPACE = re.compile(r"\s+")


def _width(entry: Mapping[str, object]) -> int:
    try:
        return int(entry.get("width") or 0)
    except (TypeError, ValueError) as exc:
        raise RecordError(f"Media width {entry.get('width')!r} is not a number") from exc


def _widest_media_url(media: object) -> str | None:
    if isinstance(media, Mapping):
        url = media.get("url")
        return str(url) if url else None
    if isinstance(media, list):
        candidates = [entry for entry in media if isinstance(entry, Mapping) and entry.get("url")]
        if not candidates:
            return None
        widest = max(candidates, key=_width)
        return str(widest["url"])
    return None


@dataclass(slots=True)
class SvcPost:
    post_id: str
    blog_name: str
    post_url: str
    slug: str
    date: str
    timestamp: int | None
    reblog_key: str
    tags: list[str]
    media_urls: list[str]
    body: str

    @classmethod
    def from_record(cls, raw: Mapping[str, object]) -> "SvcPost":
        if not isinstance(raw, Mapping):
            raise RecordError(f"svc post record must be an object, got {type(raw).__name__}")
        post_id = raw.get("id")
        if post_id in (None, ""):
            raise RecordError("svc post record has no id")

        blog = raw.get("blog")
        blog_name = str(blog.get("name") or "") if isinstance(blog, Mapping) else ""

        media_urls: list[str] = []
        text_parts: list[str] = []
        for block in list_field(raw, "content"):
            if not isinstance(block, Mapping):
                continue
            block_type = block.get("type")
            if block_type in ("image", "video", "audio"):
                url = _widest_media_url(block.get("media")) or (str(block["url"]) if block.get("url") else None)
                if url and url not in media_urls:
                    media_urls.append(url)
            elif block_type == "text" and block.get("text"):
                text_parts.append(str(block["text"]))
            elif block_type == "link" and block.get("url"):
                text_parts.append(str(block["url"]))
        for entry in list_field(raw, "trail"):
            if isinstance(entry, Mapping) and entry.get("content_raw"):
                text_parts.append(str(entry["content_raw"]))

        timestamp = raw.get("timestamp")
        try:
            timestamp_value = int(timestamp) if timestamp is not None else None
        except (TypeError, ValueError) as exc:
            raise RecordError(f"Post {post_id} has invalid timestamp {timestamp!r}") from exc
        return cls(
            post_id=str(post_id),
            blog_name=blog_name,
            post_url=str(raw.get("post_url") or ""),
            slug=str(raw.get("slug") or ""),
            date=str(raw.get("date") or ""),
            timestamp=timestamp_value,
            reblog_key=str(raw.get("reblog_key") or ""),
            tags=[str(tag) for tag in list_field(raw, "tags")],
            media_urls=media_urls,
            body="\n".join(text_parts),
        )


class SvcTextRenderer:
    extension = "txt"

    def render(self, raw_record: Mapping[str, object]) -> bytes:
        post = SvcPost.from_record(raw_record)
        lines = [
            f"Post ID: {post.post_id}, Date: {post.date}",
            f"Blog: {post.blog_name}",
            f"PostURL: {post.post_url}",
            f"Slug: {post.slug}",
            f"Reblog key: {post.reblog_key}",
            f"Timestamp: {post.timestamp if post.timestamp is not None else ''}",
            f"Tags: {', '.join(post.tags)}",
            f"Media: {', '.join(post.media_urls)}",
            f"Body: {_WHITESPACE.sub(' ', post.body).strip()}",
        ]
        return ("\n".join(lines) + "\n\n").encode("utf-8")


class SvcJsonRenderer:
    extension = "ndjson"

    def render(self, raw_record: Mapping[str, object]) -> bytes:
        SvcPost.from_record(raw_record)
        return (json.dumps(dict(raw_record), ensure_ascii=False, sort_keys=True) + "\n").encode("utf-8")
