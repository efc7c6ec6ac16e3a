"""Tracks whether the media attached to a post is ready for submission."""

from __future__ import annotations

import threading
from typing import Hashable

from post_uploader.platforms.base import MediaObserver, MediaService

from ..utils.logging import get_logger
from .models import Post

LOGGER = get_logger(__name__)


class MediaReadinessTracker:
    """Wraps a :class:`MediaService` and owns one observer per post at most.

    Registration, lookup and removal of observer handles all happen under a
    single lock, so concurrent saves of the same post cannot both register and
    concurrent media callbacks cannot both tear the same observation down.
    """

    def __init__(self, media_service: MediaService) -> None:
        self._media_service = media_service
        self._lock = threading.Lock()
        self._observers: dict[str, Hashable] = {}

    @property
    def media_service(self) -> MediaService:
        return self._media_service

    def upload_media(self, post: Post, automated_retry: bool = False) -> bool:
        return self._media_service.upload_media(post, automated_retry=automated_retry)

    def is_uploading_media(self, post: Post) -> bool:
        return self._media_service.is_uploading_media(post)

    def is_observing(self, post: Post) -> bool:
        with self._lock:
            return post.post_id in self._observers

    def observe(self, post: Post, callback: MediaObserver) -> Hashable | None:
        """Register ``callback`` unless the post is already observed.

        Returns the new handle, or None when an observation already exists.
        """
        with self._lock:
            if post.post_id in self._observers:
                return None
            handle = self._media_service.add_observer(callback, for_post=post)
            self._observers[post.post_id] = handle
        LOGGER.debug(
            "Observing media",
            extra={"event": "tracker.observe", "post_id": post.post_id, "handle": str(handle)},
        )
        return handle

    def stop_observing(self, post: Post, handle: Hashable | None = None) -> bool:
        """Remove the post's observation; True only for the caller that removed it.

        When ``handle`` is given, nothing happens unless it is still the current one.
        """
        with self._lock:
            current = self._observers.get(post.post_id)
            if current is None or (handle is not None and current != handle):
                return False
            del self._observers[post.post_id]
            self._media_service.remove_observer(current)
        LOGGER.debug(
            "Stopped observing media",
            extra={"event": "tracker.stop", "post_id": post.post_id, "handle": str(current)},
        )
        return True

    def cancel_uploads(self, post: Post) -> None:
        self._media_service.cancel_upload_of_all_media(post)

    @property
    def observed_post_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._observers)


__all__ = ["MediaReadinessTracker"]
