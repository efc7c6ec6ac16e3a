"""Domain models for posts, pages and their attached media."""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _new_id() -> str:
    return uuid.uuid4().hex


def _parse_datetime(value: object) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PostStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"
    PUBLISH = "publish"
    SCHEDULED = "future"
    TRASH = "trash"


class RemoteStatus(str, Enum):
    """Where a post or media item stands relative to the server."""

    LOCAL = "local"
    PUSHING = "pushing"
    PUSHING_MEDIA = "pushing_media"
    FAILED = "failed"
    SYNC = "sync"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"

    @classmethod
    def from_mime(cls, mime_type: str | None) -> "MediaType":
        prefix = (mime_type or "").split("/", 1)[0]
        try:
            return cls(prefix)
        except ValueError:
            return cls.DOCUMENT


@dataclass(slots=True)
class Blog:
    blog_id: int | None
    url: str

    def to_dict(self) -> dict[str, object]:
        return {"blog_id": self.blog_id, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Blog":
        blog_id = data.get("blog_id")
        return cls(blog_id=int(blog_id) if blog_id is not None else None, url=str(data["url"]))


@dataclass(slots=True, eq=False)
class Media:
    """A file attached to a single post.

    ``upload_id`` marks the item in legacy HTML (``data-wp_upload_id``);
    ``gutenberg_upload_id`` is the temporary negative id written into block
    attributes and ``wp-image-N`` classes until the server assigns ``media_id``.
    """

    local_path: Path
    media_type: MediaType
    upload_id: str = field(default_factory=_new_id)
    gutenberg_upload_id: int = field(default_factory=lambda: -random.randint(1, 2**31 - 1))
    remote_status: RemoteStatus = RemoteStatus.LOCAL
    media_id: int | None = None
    remote_url: str | None = None
    remote_large_url: str | None = None
    remote_medium_url: str | None = None
    link: str | None = None
    width: int | None = None
    height: int | None = None
    videopress_guid: str | None = None
    auto_upload_failure_count: int = 0

    @property
    def filename(self) -> str:
        return self.local_path.name

    @property
    def is_uploaded(self) -> bool:
        return self.remote_status is RemoteStatus.SYNC

    @property
    def is_uploading(self) -> bool:
        return self.remote_status is RemoteStatus.PUSHING

    @property
    def has_failed(self) -> bool:
        return self.remote_status is RemoteStatus.FAILED

    def best_image_url(self) -> str | None:
        """Largest available rendition, falling back to the original upload."""
        return self.remote_large_url or self.remote_medium_url or self.remote_url

    def to_dict(self) -> dict[str, object]:
        return {
            "local_path": str(self.local_path),
            "media_type": self.media_type.value,
            "upload_id": self.upload_id,
            "gutenberg_upload_id": self.gutenberg_upload_id,
            "remote_status": self.remote_status.value,
            "media_id": self.media_id,
            "remote_url": self.remote_url,
            "remote_large_url": self.remote_large_url,
            "remote_medium_url": self.remote_medium_url,
            "link": self.link,
            "width": self.width,
            "height": self.height,
            "videopress_guid": self.videopress_guid,
            "auto_upload_failure_count": self.auto_upload_failure_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Media":
        media_id = data.get("media_id")
        return cls(
            local_path=Path(str(data["local_path"])),
            media_type=MediaType(data.get("media_type", MediaType.DOCUMENT.value)),
            upload_id=str(data["upload_id"]),
            gutenberg_upload_id=int(data["gutenberg_upload_id"]),
            remote_status=RemoteStatus(data.get("remote_status", RemoteStatus.LOCAL.value)),
            media_id=int(media_id) if media_id is not None else None,
            remote_url=data.get("remote_url"),
            remote_large_url=data.get("remote_large_url"),
            remote_medium_url=data.get("remote_medium_url"),
            link=data.get("link"),
            width=data.get("width"),
            height=data.get("height"),
            videopress_guid=data.get("videopress_guid"),
            auto_upload_failure_count=int(data.get("auto_upload_failure_count", 0)),
        )


@dataclass(slots=True, eq=False)
class Post:
    """A post or page as edited locally.

    Instances compare by identity so they can key dictionaries while their
    fields are being mutated; ``post_id`` is the durable identity.
    """

    blog: Blog
    title: str = ""
    content: str = ""
    post_type: str = "post"
    status: PostStatus = PostStatus.DRAFT
    remote_status: RemoteStatus = RemoteStatus.LOCAL
    post_id: str = field(default_factory=_new_id)
    remote_id: int | None = None
    link: str | None = None
    date_created_gmt: datetime | None = None
    date_modified_gmt: datetime = field(default_factory=_now)
    auto_upload_attempts_count: int = 0
    should_attempt_auto_upload: bool = False
    is_first_time_publish: bool = False
    media: list[Media] = field(default_factory=list)

    @property
    def is_page(self) -> bool:
        return self.post_type == "page"

    @property
    def has_failed_media(self) -> bool:
        return any(item.has_failed for item in self.media)

    @property
    def is_failed(self) -> bool:
        return self.remote_status is RemoteStatus.FAILED

    def has_remote(self) -> bool:
        return self.remote_id is not None and self.remote_id > 0

    def is_published(self) -> bool:
        return self.status in (PostStatus.PUBLISH, PostStatus.PRIVATE)

    def is_scheduled(self) -> bool:
        return self.status is PostStatus.SCHEDULED

    def media_for_upload_id(self, upload_id: str) -> Media | None:
        for item in self.media:
            if item.upload_id == upload_id:
                return item
        return None

    def mark_as_failed_and_draft_if_needed(self) -> None:
        """Flag the upload as failed; a never-uploaded post falls back to draft.

        A local post that failed while publishing must not silently go live on
        a later retry, so it becomes a draft until the user publishes again.
        """
        self.remote_status = RemoteStatus.FAILED
        if not self.has_remote() and self.status is not PostStatus.DRAFT:
            self.status = PostStatus.DRAFT

    def touch(self) -> None:
        self.date_modified_gmt = _now()

    def to_dict(self) -> dict[str, object]:
        return {
            "post_id": self.post_id,
            "post_type": self.post_type,
            "blog": self.blog.to_dict(),
            "title": self.title,
            "content": self.content,
            "status": self.status.value,
            "remote_status": self.remote_status.value,
            "remote_id": self.remote_id,
            "link": self.link,
            "date_created_gmt": self.date_created_gmt.isoformat() if self.date_created_gmt else None,
            "date_modified_gmt": self.date_modified_gmt.isoformat(),
            "auto_upload_attempts_count": self.auto_upload_attempts_count,
            "should_attempt_auto_upload": self.should_attempt_auto_upload,
            "is_first_time_publish": self.is_first_time_publish,
            "media": [item.to_dict() for item in self.media],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Post":
        remote_id = data.get("remote_id")
        return cls(
            post_id=str(data["post_id"]),
            post_type=str(data.get("post_type", "post")),
            blog=Blog.from_dict(data["blog"]),
            title=str(data.get("title", "")),
            content=str(data.get("content", "")),
            status=PostStatus(data.get("status", PostStatus.DRAFT.value)),
            remote_status=RemoteStatus(data.get("remote_status", RemoteStatus.LOCAL.value)),
            remote_id=int(remote_id) if remote_id is not None else None,
            link=data.get("link"),
            date_created_gmt=_parse_datetime(data.get("date_created_gmt")),
            date_modified_gmt=_parse_datetime(data.get("date_modified_gmt")) or _now(),
            auto_upload_attempts_count=int(data.get("auto_upload_attempts_count", 0)),
            should_attempt_auto_upload=bool(data.get("should_attempt_auto_upload", False)),
            is_first_time_publish=bool(data.get("is_first_time_publish", False)),
            media=[Media.from_dict(item) for item in data.get("media", [])],
        )


@dataclass(slots=True)
class RemotePost:
    """Server-side snapshot returned after a successful submission."""

    remote_id: int
    status: PostStatus
    link: str | None = None
    date_gmt: datetime | None = None
    modified_gmt: datetime | None = None
    content: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "RemotePost | None":
        """Build a snapshot from a REST response, or None when it lacks an id."""
        remote_id = data.get("id")
        if not isinstance(remote_id, int) or remote_id <= 0:
            return None
        try:
            status = PostStatus(data.get("status", PostStatus.DRAFT.value))
        except ValueError:
            status = PostStatus.DRAFT
        content = data.get("content")
        if isinstance(content, dict):
            content = content.get("raw") or content.get("rendered")
        return cls(
            remote_id=remote_id,
            status=status,
            link=data.get("link"),
            date_gmt=_parse_datetime(data.get("date_gmt")),
            modified_gmt=_parse_datetime(data.get("modified_gmt")),
            content=content if isinstance(content, str) else None,
            raw=dict(data),
        )


__all__ = [
    "Blog",
    "Media",
    "MediaType",
    "Post",
    "PostStatus",
    "RemotePost",
    "RemoteStatus",
]
