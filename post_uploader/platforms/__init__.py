"""Remote site integrations."""

from __future__ import annotations

from .base import (
    MediaObserver,
    MediaService,
    MediaState,
    PostStore,
    RemotePostService,
    RemoteServiceError,
    VideoUrlResolver,
)

__all__ = [
    "MediaObserver",
    "MediaService",
    "MediaState",
    "PostStore",
    "RemotePostService",
    "RemoteServiceError",
    "VideoUrlResolver",
]
