"""Orchestrates media uploads, reference rewriting and post submission."""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from post_uploader.platforms.base import (
    MediaState,
    NoticeSink,
    PostCoordinatorDelegate,
    PostStore,
    RemotePostService,
    RemoteServiceError,
    SearchIndex,
    VideoUrlResolver,
    describe_media,
)

from ..utils.logging import get_logger
from .content_rewriter import MediaReferenceRewriter
from .errors import MediaFailureError, SavingError, UnknownSaveError
from .events import POST_PUBLISHED, POST_SCHEDULED, POST_UPDATED, PostEvents
from .media_tracker import MediaReadinessTracker
from .models import Media, MediaType, Post, PostStatus, RemotePost, RemoteStatus
from .notices import (
    LoggingNoticeSink,
    Notice,
    auto_upload_cancelled_notice,
    deletion_failure_notice,
    deletion_notice,
    upload_failure_notice,
    upload_success_notice,
)
from .search_index import InMemorySearchIndex

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class SaveResult:
    """Outcome delivered to a save completion."""

    post: Post
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


SaveCompletion = Callable[[SaveResult], None]
_Prepared = Callable[[Post, SavingError | None], None]


class PostCoordinator:
    """Saves, publishes, auto-saves and deletes posts.

    Each post carries a save *generation*. A save remembers the generation it
    started in, and cancelling or deleting advances it; results of a save whose
    generation is no longer current are not committed.
    """

    def __init__(
        self,
        store: PostStore,
        tracker: MediaReadinessTracker,
        post_service: RemotePostService,
        *,
        video_resolver: VideoUrlResolver | None = None,
        notices: NoticeSink | None = None,
        events: PostEvents | None = None,
        search_index: SearchIndex | None = None,
        rewriter: MediaReferenceRewriter | None = None,
        executor: Executor | None = None,
        delegate: PostCoordinatorDelegate | None = None,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._post_service = post_service
        self._video_resolver = video_resolver
        self._notices = notices or LoggingNoticeSink()
        self._events = events or PostEvents()
        self._search_index = search_index or InMemorySearchIndex()
        self._rewriter = rewriter or MediaReferenceRewriter()
        self._executor = executor
        self.delegate = delegate

        self._lock = threading.Lock()
        self._pending_deletion: set[str] = set()
        self._generations: dict[str, int] = {}

    @property
    def events(self) -> PostEvents:
        return self._events

    # Saving -----------------------------------------------------------

    def save(
        self,
        post: Post,
        *,
        automated_retry: bool = False,
        force_draft_if_creating: bool = False,
        default_failure_notice: Notice | None = None,
        completion: SaveCompletion | None = None,
    ) -> None:
        """Upload or update the post once its media is ready.

        The completion is called once with a :class:`SaveResult`, except when
        the save is cancelled or the post already had a save waiting for media.
        """
        ticket = self._current_generation(post)
        LOGGER.info(
            "Saving post",
            extra={
                "event": "coordinator.save",
                "post_id": post.post_id,
                "automated_retry": automated_retry,
                "force_draft": force_draft_if_creating,
            },
        )

        def prepared(ready: Post, error: SavingError | None) -> None:
            if error is None:
                if not self._is_current(ready, ticket):
                    self._log_stale(ready, "save")
                    return
                self._dispatch(
                    lambda: self._upload(ready, force_draft_if_creating, ticket, completion)
                )
                return

            if isinstance(error, MediaFailureError):
                self._notices.dispatch(upload_failure_notice(error.post, media_failed=True))
            elif default_failure_notice is not None:
                self._notices.dispatch(default_failure_notice)
            self._complete(completion, SaveResult(ready, error))

        self._prepare_to_save(post, automated_retry, ticket, prepared)

    def auto_save(self, post: Post, *, automated_retry: bool = False) -> None:
        """Store an autosave revision once media is ready; failures are only logged."""
        ticket = self._current_generation(post)

        def prepared(ready: Post, error: SavingError | None) -> None:
            if error is not None:
                LOGGER.info(
                    "Autosave skipped",
                    extra={"event": "coordinator.autosave", "post_id": ready.post_id, "reason": str(error)},
                )
                return
            if not self._is_current(ready, ticket):
                self._log_stale(ready, "autosave")
                return
            self._dispatch(lambda: self._auto_save(ready, ticket))

        self._prepare_to_save(post, automated_retry, ticket, prepared)

    def publish(self, post: Post, *, completion: SaveCompletion | None = None) -> None:
        def mark_for_publishing(target: Post) -> None:
            if target.status is PostStatus.DRAFT:
                target.status = PostStatus.PUBLISH
                target.is_first_time_publish = True
            if target.status is not PostStatus.SCHEDULED:
                target.date_created_gmt = datetime.now(timezone.utc).replace(microsecond=0)
            target.should_attempt_auto_upload = True

        self._store.perform(post, mark_for_publishing)
        self.save(post, completion=completion)

    def move_to_draft(self, post: Post, *, completion: SaveCompletion | None = None) -> None:
        self._store.perform(post, lambda target: setattr(target, "status", PostStatus.DRAFT))
        self.save(post, completion=completion)

    def cancel_any_pending_save_of(self, post: Post) -> None:
        self._advance_generation(post)
        self._tracker.stop_observing(post)

    def cancel_auto_upload_of(self, post: Post) -> None:
        """Stop waiting for media and skip future automatic uploads.

        A request already sent to the server is not aborted; its result is
        dropped when it arrives.
        """
        self.cancel_any_pending_save_of(post)
        self._store.perform(
            post, lambda target: setattr(target, "should_attempt_auto_upload", False)
        )
        self._notices.dispatch(auto_upload_cancelled_notice(post))
        LOGGER.info(
            "Cancelled automatic upload",
            extra={"event": "coordinator.cancel", "post_id": post.post_id},
        )

    def is_uploading(self, post: Post) -> bool:
        return post.remote_status is RemoteStatus.PUSHING

    def add_media(self, paths: Iterable[Path], post: Post) -> list[Media]:
        media_service = self._tracker.media_service
        return [media_service.add_media(Path(path), post) for path in paths]

    def refresh_post_status(self) -> list[Post]:
        """Mark posts left in ``pushing`` states by an interrupted run as failed."""
        repaired: list[Post] = []
        for post in self._store.all():
            if post.remote_status not in (RemoteStatus.PUSHING, RemoteStatus.PUSHING_MEDIA):
                continue
            if self._tracker.is_observing(post) or self._tracker.is_uploading_media(post):
                continue
            self._change_status(post, RemoteStatus.FAILED)
            repaired.append(post)
        if repaired:
            LOGGER.info(
                "Repaired interrupted uploads",
                extra={"event": "coordinator.refresh", "post_ids": [p.post_id for p in repaired]},
            )
        return repaired

    # Preparation ------------------------------------------------------

    def _prepare_to_save(
        self, post: Post, automated_retry: bool, ticket: int, then: _Prepared
    ) -> None:
        def count_attempt(target: Post) -> None:
            if automated_retry:
                target.auto_upload_attempts_count += 1
            else:
                # A user-initiated save stays eligible for retries until it succeeds.
                target.auto_upload_attempts_count = 0
                target.should_attempt_auto_upload = True

        self._store.perform(post, count_attempt)

        if not self._tracker.upload_media(post, automated_retry=automated_retry):
            LOGGER.warning(
                "Media upload could not start",
                extra={
                    "event": "coordinator.media_failed",
                    "post_id": post.post_id,
                    "media": describe_media(post.media),
                },
            )
            self._change_status(post, RemoteStatus.FAILED)
            then(post, MediaFailureError(post))
            return

        self._change_status(post, RemoteStatus.PUSHING)

        if self._tracker.is_uploading_media(post) or post.has_failed_media:
            self._change_status(post, RemoteStatus.PUSHING_MEDIA)
            if self._tracker.is_observing(post):
                LOGGER.debug(
                    "Post already waiting for media",
                    extra={"event": "coordinator.save", "post_id": post.post_id},
                )
                return

            synced = [item for item in post.media if item.is_uploaded]
            self._update_media_references(post, synced)

            handle = self._tracker.observe(post, self._media_observer(post, ticket, then))
            if handle is None:
                return
            LOGGER.info(
                "Waiting for media",
                extra={
                    "event": "coordinator.pushing_media",
                    "post_id": post.post_id,
                    "media": describe_media(post.media),
                },
            )
            # Media may have settled between the check above and registration.
            self._finish_if_media_ready(post, ticket, then)
            return

        self._update_media_references(post, post.media)
        then(post, None)

    def _media_observer(
        self, post: Post, ticket: int, then: _Prepared
    ) -> Callable[[Media, MediaState], None]:
        def on_media_event(media: Media, state: MediaState) -> None:
            if not self._is_current(post, ticket):
                return
            if state is MediaState.FAILED:
                self._handle_media_failure(post, then)
            elif state is MediaState.ENDED:
                self._handle_media_ended(post, media, ticket, then)
            else:
                LOGGER.debug(
                    "Media state changed",
                    extra={
                        "event": "coordinator.media_state",
                        "post_id": post.post_id,
                        "file": media.filename,
                        "state": state.value,
                    },
                )

        return on_media_event

    def _handle_media_ended(self, post: Post, media: Media, ticket: int, then: _Prepared) -> None:
        if media.media_type is MediaType.VIDEO and self._video_resolver is not None:
            try:
                video_url = self._video_resolver.fetch_remote_video_url(media, post)
            except (RemoteServiceError, ValueError) as exc:
                LOGGER.warning(
                    "Could not resolve video URL",
                    extra={
                        "event": "coordinator.video_url",
                        "post_id": post.post_id,
                        "file": media.filename,
                        "error": str(exc),
                    },
                )
                self._handle_media_failure(post, then)
                return
            self._store.perform(post, lambda _: setattr(media, "remote_url", video_url))

        self._update_media_references(post, [media])
        self._finish_if_media_ready(post, ticket, then)

    def _finish_if_media_ready(self, post: Post, ticket: int, then: _Prepared) -> None:
        # Uploads store their outcome before they stop counting as active, so
        # the failure check must come after the activity check.
        if self._tracker.is_uploading_media(post) or not self._is_current(post, ticket):
            return
        if post.has_failed_media:
            self._handle_media_failure(post, then)
            return
        if self._tracker.stop_observing(post):
            self._update_media_references(post, post.media)
            then(post, None)

    def _handle_media_failure(self, post: Post, then: _Prepared) -> None:
        # The first failure wins; later events find no observation to remove.
        if not self._tracker.stop_observing(post):
            return
        self._change_status(post, RemoteStatus.FAILED)
        LOGGER.warning(
            "Media failed to upload",
            extra={
                "event": "coordinator.media_failed",
                "post_id": post.post_id,
                "media": describe_media(post.media),
            },
        )
        then(post, MediaFailureError(post))

    def _update_media_references(self, post: Post, media: Iterable[Media]) -> None:
        items = list(media)
        if not items:
            return

        def rewrite(target: Post) -> None:
            target.content = self._rewriter.rewrite(target.content, items)

        self._store.perform(post, rewrite)

    # Submission -------------------------------------------------------

    def _upload(
        self,
        post: Post,
        force_draft_if_creating: bool,
        ticket: int,
        completion: SaveCompletion | None,
    ) -> None:
        try:
            remote = self._post_service.upload_post(
                post, force_draft_if_creating=force_draft_if_creating
            )
        except RemoteServiceError as exc:
            self._change_status(post, RemoteStatus.FAILED)
            if not self._is_current(post, ticket):
                self._log_stale(post, "upload")
                return
            LOGGER.error(
                "Post upload failed",
                extra={"event": "coordinator.upload_failed", "post_id": post.post_id, "error": str(exc)},
            )
            self._notices.dispatch(upload_failure_notice(post))
            self._complete(completion, SaveResult(post, exc))
            return

        if remote is None:
            self._change_status(post, RemoteStatus.FAILED)
            if self._is_current(post, ticket):
                self._notices.dispatch(upload_failure_notice(post))
                self._complete(completion, SaveResult(post, UnknownSaveError()))
            return

        if not self._is_current(post, ticket):
            # Keep the server id so a later save updates instead of duplicating.
            self._store.perform(post, lambda target: setattr(target, "remote_id", remote.remote_id))
            self._log_stale(post, "upload")
            return

        self._store.perform(post, lambda target: self._apply_remote(target, remote))
        LOGGER.info(
            "Post uploaded",
            extra={
                "event": "coordinator.uploaded",
                "post_id": post.post_id,
                "remote_id": post.remote_id,
                "status": post.status.value,
            },
        )

        if post.is_scheduled():
            self._events.emit(POST_SCHEDULED, {post.post_id})
        elif post.is_published():
            self._events.emit(POST_PUBLISHED, {post.post_id})
        self._update_search_index(self._search_index.index_item, post)
        self._notices.dispatch(upload_success_notice(post))
        self._complete(completion, SaveResult(post))

    def _auto_save(self, post: Post, ticket: int) -> None:
        try:
            remote = self._post_service.autosave(post)
        except RemoteServiceError as exc:
            LOGGER.warning(
                "Autosave failed",
                extra={"event": "coordinator.autosave", "post_id": post.post_id, "error": str(exc)},
            )
            self._change_status(post, RemoteStatus.FAILED)
            return

        if remote is None:
            self._change_status(post, RemoteStatus.FAILED)
            return
        if not self._is_current(post, ticket):
            self._log_stale(post, "autosave")
            return

        def apply(target: Post) -> None:
            if not target.has_remote():
                target.remote_id = remote.remote_id
                target.link = remote.link or target.link
            target.remote_status = RemoteStatus.SYNC
            target.should_attempt_auto_upload = False

        self._store.perform(post, apply)
        LOGGER.info(
            "Post autosaved",
            extra={"event": "coordinator.autosave", "post_id": post.post_id, "remote_id": post.remote_id},
        )

    @staticmethod
    def _apply_remote(target: Post, remote: RemotePost) -> None:
        target.remote_id = remote.remote_id
        target.status = remote.status
        target.link = remote.link or target.link
        if remote.date_gmt is not None:
            target.date_created_gmt = remote.date_gmt
        if remote.modified_gmt is not None:
            target.date_modified_gmt = remote.modified_gmt
        target.remote_status = RemoteStatus.SYNC
        target.should_attempt_auto_upload = False

    # Trash / delete ---------------------------------------------------

    def is_deleting(self, post: Post) -> bool:
        with self._lock:
            return post.post_id in self._pending_deletion

    def delete(self, post: Post) -> bool:
        """Move the post to trash, or delete it permanently if it already is there.

        Returns False when the post is already being deleted or the request failed.
        """
        with self._lock:
            if post.post_id in self._pending_deletion:
                LOGGER.info(
                    "Post already pending deletion",
                    extra={"event": "coordinator.delete", "post_id": post.post_id},
                )
                return False
            self._pending_deletion.add(post.post_id)
        self._events.emit(POST_UPDATED, {post.post_id})

        permanently = post.status is PostStatus.TRASH or not post.has_remote()
        try:
            if post.has_remote():
                self._post_service.trash(post)
        except RemoteServiceError as exc:
            LOGGER.error(
                "Delete failed",
                extra={"event": "coordinator.delete_failed", "post_id": post.post_id, "error": str(exc)},
            )
            if exc.is_forbidden and self.delegate is not None:
                self.delegate.prompt_for_password(post.blog)
            else:
                self._notices.dispatch(deletion_failure_notice(post, exc))
            self._set_pending_deletion(post, False)
            return False

        self.cancel_any_pending_save_of(post)
        self._tracker.cancel_uploads(post)
        if permanently:
            self._store.delete(post)
        else:
            def mark_trashed(target: Post) -> None:
                target.status = PostStatus.TRASH
                target.remote_status = RemoteStatus.SYNC

            self._store.perform(post, mark_trashed)
        self._update_search_index(self._search_index.delete_item, post)
        self._notices.dispatch(deletion_notice(post, permanently=permanently))
        LOGGER.info(
            "Post deleted" if permanently else "Post moved to trash",
            extra={"event": "coordinator.delete", "post_id": post.post_id},
        )
        # The list drops the post on its own; no refresh event needed.
        self._set_pending_deletion(post, False, notify=False)
        return True

    def _set_pending_deletion(self, post: Post, pending: bool, *, notify: bool = True) -> None:
        with self._lock:
            if pending:
                self._pending_deletion.add(post.post_id)
            else:
                self._pending_deletion.discard(post.post_id)
        if notify:
            self._events.emit(POST_UPDATED, {post.post_id})

    # Helpers ----------------------------------------------------------

    def _change_status(self, post: Post, status: RemoteStatus) -> None:
        def apply(target: Post) -> None:
            if status is RemoteStatus.FAILED:
                target.mark_as_failed_and_draft_if_needed()
            else:
                target.remote_status = status

        self._store.perform(post, apply)

    def _current_generation(self, post: Post) -> int:
        with self._lock:
            return self._generations.get(post.post_id, 0)

    def _advance_generation(self, post: Post) -> None:
        with self._lock:
            self._generations[post.post_id] = self._generations.get(post.post_id, 0) + 1

    def _is_current(self, post: Post, ticket: int) -> bool:
        return self._current_generation(post) == ticket

    def _dispatch(self, work: Callable[[], None]) -> None:
        if self._executor is None:
            work()
            return
        future = self._executor.submit(work)
        future.add_done_callback(self._log_background_failure)

    @staticmethod
    def _log_background_failure(future: Future[None]) -> None:
        exc = future.exception()
        if exc is not None:
            LOGGER.error(
                "Background submission crashed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"event": "coordinator.background_error"},
            )

    @staticmethod
    def _complete(completion: SaveCompletion | None, result: SaveResult) -> None:
        if completion is not None:
            completion(result)

    @staticmethod
    def _update_search_index(action: Callable[[Post], None], post: Post) -> None:
        try:
            action(post)
        except Exception as exc:  # best effort, the index is rebuilt on demand
            LOGGER.warning(
                "Search index update failed",
                extra={"event": "coordinator.search_index", "post_id": post.post_id, "error": str(exc)},
            )

    @staticmethod
    def _log_stale(post: Post, operation: str) -> None:
        LOGGER.info(
            "Dropping result of a cancelled save",
            extra={"event": "coordinator.stale", "post_id": post.post_id, "operation": operation},
        )


__all__ = ["PostCoordinator", "SaveCompletion", "SaveResult"]
