"""Contracts for the services the post coordinator depends on."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Hashable, Iterable, Mapping, Protocol, Sequence

from post_uploader.services.models import Blog, Media, MediaType, Post, RemotePost

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from post_uploader.services.notices import Notice


class RemoteServiceError(RuntimeError):
    """Raised when a call to the remote site fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = dict(details or {})

    @property
    def is_forbidden(self) -> bool:
        return self.status_code == 403

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            base = f"{base} (HTTP {self.status_code})"
        if not self.details:
            return base
        try:
            detail_repr = json.dumps(self.details, ensure_ascii=False)
        except TypeError:
            detail_repr = str(self.details)
        return f"{base} | details: {detail_repr}"


class MediaState(str, Enum):
    UPLOADING = "uploading"
    ENDED = "ended"
    FAILED = "failed"


MediaObserver = Callable[[Media, MediaState], None]


class MediaService(Protocol):
    """Uploads attachments in the background and reports their progress."""

    def add_media(self, path: Path, post: Post, media_type: MediaType | None = None) -> Media:
        """Attach a local file to ``post`` without uploading it yet."""

    def upload_media(self, post: Post, automated_retry: bool = False) -> bool:
        """Start or resume uploads for the post; False when some media can't be pushed."""

    def is_uploading_media(self, post: Post) -> bool:
        """Whether any attachment of ``post`` is still uploading."""

    def add_observer(self, callback: MediaObserver, for_post: Post) -> Hashable:
        """Register ``callback`` for media events of ``post`` and return a handle."""

    def remove_observer(self, handle: Hashable) -> None:
        """Forget the observer registered under ``handle``."""

    def cancel_upload_of_all_media(self, post: Post) -> None:
        """Stop pending uploads for ``post``."""


class VideoUrlResolver(Protocol):
    def fetch_remote_video_url(self, media: Media, post: Post) -> str:
        """Return the playable URL of an uploaded video or raise."""


class RemotePostService(Protocol):
    """Single-attempt submissions of posts to the remote site."""

    def upload_post(
        self, post: Post, *, force_draft_if_creating: bool = False
    ) -> RemotePost | None:
        """Create or update the post; None when the response holds no post."""

    def autosave(self, post: Post) -> RemotePost | None:
        """Store the post as an autosave revision."""

    def trash(self, post: Post) -> RemotePost | None:
        """Move the post to trash, or delete it when it already is there."""


class PostStore(ABC):
    """Persists posts; every mutation of a post goes through :meth:`perform`."""

    @abstractmethod
    def perform(self, post: Post, mutate: Callable[[Post], None] | None = None) -> Post:
        """Apply ``mutate`` under the post's lock and write the result before returning."""

    @abstractmethod
    def get(self, post_id: str) -> Post | None:
        """Return the live instance for ``post_id``."""

    @abstractmethod
    def all(self) -> Sequence[Post]:
        """Return every stored post."""

    @abstractmethod
    def delete(self, post: Post) -> None:
        """Remove the post permanently."""

    def failed(self) -> list[Post]:
        return [post for post in self.all() if post.is_failed]


class NoticeSink(Protocol):
    def dispatch(self, notice: Notice) -> None:
        """Show or record a user-facing notice."""


class SearchIndex(Protocol):
    def index_item(self, post: Post) -> None:
        """Add or refresh the post in the local search index."""

    def delete_item(self, post: Post) -> None:
        """Drop the post from the local search index."""


class PostCoordinatorDelegate(Protocol):
    def prompt_for_password(self, blog: Blog) -> None:
        """Ask the user to re-enter credentials for ``blog``."""


def describe_media(media: Iterable[Media]) -> list[dict[str, object]]:
    """Small log-friendly summary of media items."""
    return [
        {"file": item.filename, "type": item.media_type.value, "status": item.remote_status.value}
        for item in media
    ]


__all__ = [
    "MediaObserver",
    "MediaService",
    "MediaState",
    "NoticeSink",
    "PostCoordinatorDelegate",
    "PostStore",
    "RemotePostService",
    "RemoteServiceError",
    "SearchIndex",
    "VideoUrlResolver",
    "describe_media",
]
