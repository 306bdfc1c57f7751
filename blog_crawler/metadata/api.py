"""Renderers for posts returned by the public v2 API."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Mapping

_WHITESPACE = re.compile(r"\s+")


class RecordError(ValueError):
    """Raised when a raw post record lacks the fields a renderer needs."""


def list_field(raw: Mapping[str, object], key: str) -> list:
    """Return ``raw[key]`` as a list; absent or null fields read as empty."""

    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise RecordError(f"Field {key!r} must be a list, got {type(value).__name__}")
    return value


@dataclass(slots=True)
class ApiPost:
    post_id: str
    blog_name: str
    post_type: str
    post_url: str
    slug: str
    date: str
    timestamp: int | None
    reblog_key: str
    tags: list[str]
    media_urls: list[str]
    body: str

    @classmethod
    def from_record(cls, raw: Mapping[str, object]) -> "ApiPost":
        if not isinstance(raw, Mapping):
            raise RecordError(f"API post record must be an object, got {type(raw).__name__}")
        post_id = raw.get("id_string") or raw.get("id")
        if post_id in (None, ""):
            raise RecordError("API post record has no id")

        media_urls: list[str] = []
        for photo in list_field(raw, "photos"):
            if isinstance(photo, Mapping):
                original = photo.get("original_size")
                if isinstance(original, Mapping) and original.get("url"):
                    media_urls.append(str(original["url"]))
        video_url = raw.get("video_url")
        if video_url:
            media_urls.append(str(video_url))
        audio_url = raw.get("audio_url")
        if audio_url:
            media_urls.append(str(audio_url))

        body_parts = [
            str(raw[key])
            for key in ("body", "caption", "text", "answer", "description")
            if raw.get(key)
        ]
        timestamp = raw.get("timestamp")
        try:
            timestamp_value = int(timestamp) if timestamp is not None else None
        except (TypeError, ValueError) as exc:
            raise RecordError(f"Post {post_id} has invalid timestamp {timestamp!r}") from exc
        return cls(
            post_id=str(post_id),
            blog_name=str(raw.get("blog_name") or ""),
            post_type=str(raw.get("type") or ""),
            post_url=str(raw.get("post_url") or ""),
            slug=str(raw.get("slug") or ""),
            date=str(raw.get("date") or ""),
            timestamp=timestamp_value,
            reblog_key=str(raw.get("reblog_key") or ""),
            tags=[str(tag) for tag in list_field(raw, "tags")],
            media_urls=media_urls,
            body="\n".join(body_parts),
        )


class ApiTextRenderer:
    extension = "txt"

    def render(self, raw_record: Mapping[str, object]) -> bytes:
        post = ApiPost.from_record(raw_record)
        lines = [
            f"Post ID: {post.post_id}, Date: {post.date}",
            f"PostURL: {post.post_url}",
            f"Slug: {post.slug}",
            f"Reblog key: {post.reblog_key}",
            f"Type: {post.post_type}",
            f"Timestamp: {post.timestamp if post.timestamp is not None else ''}",
            f"Tags: {', '.join(post.tags)}",
            f"Media: {', '.join(post.media_urls)}",
            f"Body: {_WHITESPACE.sub(' ', post.body).strip()}",
        ]
        return ("\n".join(lines) + "\n\n").encode("utf-8")


class ApiJsonRenderer:
    extension = "ndjson"

    def render(self, raw_record: Mapping[str, object]) -> bytes:
        # validates the record the same way the text renderer does
        ApiPost.from_record(raw_record)
        return (json.dumps(dict(raw_record), ensure_ascii=False, sort_keys=True) + "\n").encode("utf-8")
