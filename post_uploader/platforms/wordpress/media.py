"""Background media uploads through ``/wp/v2/media``."""

from __future__ import annotations

import mimetypes
import threading
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Hashable

from post_uploader.platforms.base import MediaObserver, MediaState, PostStore
from post_uploader.services.models import Media, MediaType, Post, RemoteStatus

from ...utils.logging import get_logger
from .api import WordPressApiClient, WordPressApiError

LOGGER = get_logger(__name__)

_UploadKey = tuple[str, str]


class WordPressMediaCoordinator:
    """Uploads post attachments on a worker pool and reports each state change.

    Observers are called on the worker thread that finished the upload.
    """

    def __init__(
        self,
        client: WordPressApiClient,
        store: PostStore,
        *,
        max_workers: int = 2,
        max_auto_upload_failures: int = 3,
        timeout: float | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._max_failures = max_auto_upload_failures
        self._timeout = timeout
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="media-upload"
        )
        self._lock = threading.Lock()
        self._observers: dict[str, tuple[str, MediaObserver]] = {}
        self._active: set[_UploadKey] = set()
        self._futures: dict[_UploadKey, Any] = {}
        self._cancelled: set[_UploadKey] = set()

    # Attachments ------------------------------------------------------

    def add_media(self, path: Path, post: Post, media_type: MediaType | None = None) -> Media:
        path = Path(path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Media file not found: {path}")
        if media_type is None:
            media_type = MediaType.from_mime(mimetypes.guess_type(path.name)[0])
        media = Media(local_path=path.resolve(), media_type=media_type)
        self._store.perform(post, lambda target: target.media.append(media))
        LOGGER.info(
            "Attached media",
            extra={
                "event": "media.add",
                "post_id": post.post_id,
                "file": media.filename,
                "type": media_type.value,
                "gutenberg_upload_id": media.gutenberg_upload_id,
            },
        )
        return media

    # Uploads ----------------------------------------------------------

    def upload_media(self, post: Post, automated_retry: bool = False) -> bool:
        """Start uploads for every attachment not yet on the server.

        Returns False without starting anything when a file is missing or, on
        automated retries, when an item already failed too often.
        """
        to_start: list[Media] = []
        blocked: list[str] = []

        def prepare(target: Post) -> None:
            pending = [
                item
                for item in target.media
                if not item.is_uploaded and not self._is_active(target, item)
            ]
            for item in pending:
                if not item.local_path.is_file():
                    item.remote_status = RemoteStatus.FAILED
                    blocked.append(item.filename)
                elif (
                    automated_retry
                    and item.has_failed
                    and item.auto_upload_failure_count >= self._max_failures
                ):
                    blocked.append(item.filename)
            if blocked:
                return
            for item in pending:
                if not automated_retry:
                    item.auto_upload_failure_count = 0
                item.remote_status = RemoteStatus.PUSHING
                to_start.append(item)
            # Claimed under the post lock; a concurrent save sees them as active.
            self._claim(target, to_start)

        self._store.perform(post, prepare)
        if blocked:
            LOGGER.warning(
                "Media cannot be uploaded",
                extra={"event": "media.blocked", "post_id": post.post_id, "files": blocked},
            )
            return False

        for item in to_start:
            self._start(post, item)
        return True

    def is_uploading_media(self, post: Post) -> bool:
        with self._lock:
            return any(post_id == post.post_id for post_id, _ in self._active)

    def cancel_upload_of_all_media(self, post: Post) -> None:
        with self._lock:
            keys = [key for key in self._active if key[0] == post.post_id]
            for key in keys:
                self._cancelled.add(key)
                self._active.discard(key)
                future = self._futures.pop(key, None)
                if future is not None:
                    future.cancel()
        if keys:
            LOGGER.info(
                "Cancelled media uploads",
                extra={"event": "media.cancel", "post_id": post.post_id, "count": len(keys)},
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # Observers --------------------------------------------------------

    def add_observer(self, callback: MediaObserver, for_post: Post) -> Hashable:
        handle = uuid.uuid4().hex
        with self._lock:
            self._observers[handle] = (for_post.post_id, callback)
        return handle

    def remove_observer(self, handle: Hashable) -> None:
        with self._lock:
            self._observers.pop(str(handle), None)

    def _notify(self, post: Post, media: Media, state: MediaState) -> None:
        with self._lock:
            callbacks = [cb for post_id, cb in self._observers.values() if post_id == post.post_id]
        for callback in callbacks:
            callback(media, state)

    # Workers ----------------------------------------------------------

    def _is_active(self, post: Post, media: Media) -> bool:
        with self._lock:
            return (post.post_id, media.upload_id) in self._active

    def _is_cancelled(self, key: _UploadKey) -> bool:
        with self._lock:
            return key in self._cancelled

    def _claim(self, post: Post, items: list[Media]) -> None:
        with self._lock:
            for media in items:
                key = (post.post_id, media.upload_id)
                self._cancelled.discard(key)
                self._active.add(key)

    def _start(self, post: Post, media: Media) -> None:
        key = (post.post_id, media.upload_id)
        future = self._executor.submit(self._run_upload, post, media)
        future.add_done_callback(lambda done: self._upload_done(post, media, done))
        with self._lock:
            if key in self._active:
                self._futures[key] = future

    def _finish(self, key: _UploadKey) -> bool:
        """Drop bookkeeping for ``key``; False when the upload was cancelled."""
        with self._lock:
            self._active.discard(key)
            self._futures.pop(key, None)
            if key in self._cancelled:
                self._cancelled.discard(key)
                return False
        return True

    def _run_upload(self, post: Post, media: Media) -> None:
        # The outcome is stored before the item leaves ``_active``; readers that
        # see no active upload must also see its final state.
        key = (post.post_id, media.upload_id)
        self._notify(post, media, MediaState.UPLOADING)
        LOGGER.info(
            "Uploading media",
            extra={"event": "media.upload", "post_id": post.post_id, "file": media.filename},
        )
        try:
            data = self._send(post, media)
        except (WordPressApiError, OSError) as exc:
            if self._is_cancelled(key):
                self._finish(key)
                return
            self._mark_failed(post, media, str(exc))
            if self._finish(key):
                self._notify(post, media, MediaState.FAILED)
            return

        if self._is_cancelled(key):
            self._finish(key)
            LOGGER.info(
                "Dropping result of cancelled media upload",
                extra={"event": "media.cancelled", "post_id": post.post_id, "file": media.filename},
            )
            return

        media_id = data.get("id")
        if not isinstance(media_id, int) or not data.get("source_url"):
            self._mark_failed(post, media, "response has no media id or URL")
            if self._finish(key):
                self._notify(post, media, MediaState.FAILED)
            return

        self._store.perform(post, lambda _: self._apply_response(media, data))
        if not self._finish(key):
            return
        LOGGER.info(
            "Media uploaded",
            extra={
                "event": "media.uploaded",
                "post_id": post.post_id,
                "file": media.filename,
                "media_id": media.media_id,
            },
        )
        self._notify(post, media, MediaState.ENDED)

    def _upload_done(self, post: Post, media: Media, future: Future[None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        self._finish((post.post_id, media.upload_id))
        LOGGER.error(
            "Media upload crashed",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"event": "media.crashed", "post_id": post.post_id, "file": media.filename},
        )
        self._store.perform(post, lambda target: target.mark_as_failed_and_draft_if_needed())
        if media.is_uploading:
            self._mark_failed(post, media, str(exc))
            self._notify(post, media, MediaState.FAILED)

    def _send(self, post: Post, media: Media) -> dict[str, Any]:
        mime_type = mimetypes.guess_type(media.filename)[0] or "application/octet-stream"
        form = {"post": str(post.remote_id)} if post.has_remote() else None
        with media.local_path.open("rb") as stream:
            files = {"file": (media.filename, stream, mime_type)}
            return self._client.request(
                "POST", "/wp/v2/media", files=files, data=form, timeout=self._timeout
            )

    def _mark_failed(self, post: Post, media: Media, reason: str) -> None:
        def apply(_: Post) -> None:
            media.remote_status = RemoteStatus.FAILED
            media.auto_upload_failure_count += 1

        self._store.perform(post, apply)
        LOGGER.warning(
            "Media upload failed",
            extra={
                "event": "media.failed",
                "post_id": post.post_id,
                "file": media.filename,
                "failures": media.auto_upload_failure_count,
                "reason": reason,
            },
        )

    @staticmethod
    def _apply_response(media: Media, data: dict[str, Any]) -> None:
        details = data.get("media_details")
        if not isinstance(details, dict):
            details = {}
        sizes = details.get("sizes")
        if not isinstance(sizes, dict):
            sizes = {}

        def size_url(name: str) -> str | None:
            size = sizes.get(name)
            return size.get("source_url") if isinstance(size, dict) else None

        media.media_id = data["id"]
        media.remote_url = data["source_url"]
        media.remote_large_url = size_url("large")
        media.remote_medium_url = size_url("medium")
        media.link = data.get("link")
        media.width = details.get("width") or media.width
        media.height = details.get("height") or media.height
        guid = data.get("jetpack_videopress_guid")
        if guid:
            media.videopress_guid = str(guid)
        media.remote_status = RemoteStatus.SYNC
