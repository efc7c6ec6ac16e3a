"""Retries failed uploads when connectivity comes back."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from post_uploader.platforms.base import PostStore

from ..utils.logging import get_logger
from .models import Post, PostStatus

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .post_coordinator import PostCoordinator

LOGGER = get_logger(__name__)

# Statuses a failed post may be retried in automatically.
_RETRYABLE_STATUSES = frozenset(
    {PostStatus.DRAFT, PostStatus.PUBLISH, PostStatus.PRIVATE, PostStatus.PENDING, PostStatus.SCHEDULED}
)


class AutoUploadAction(str, Enum):
    UPLOAD = "upload"
    UPLOAD_AS_DRAFT = "upload_as_draft"
    AUTOSAVE = "autosave"
    NOTHING = "nothing"


class PostAutoUploadInteractor:
    """Decides what an automatic retry should do with a failed post."""

    def __init__(self, max_attempts: int = 3) -> None:
        self.max_attempts = max_attempts

    def auto_upload_action(self, post: Post) -> AutoUploadAction:
        """Drafts are only ever retried as drafts.

        A post whose automatic upload was cancelled keeps its server copy in
        sync through autosaves, which leave the published state alone.
        """
        if (
            not post.is_failed
            or post.status not in _RETRYABLE_STATUSES
            or post.auto_upload_attempts_count >= self.max_attempts
        ):
            return AutoUploadAction.NOTHING
        if post.should_attempt_auto_upload:
            if post.status is PostStatus.DRAFT:
                return AutoUploadAction.UPLOAD_AS_DRAFT
            return AutoUploadAction.UPLOAD
        if post.status is not PostStatus.DRAFT and post.has_remote():
            return AutoUploadAction.AUTOSAVE
        return AutoUploadAction.NOTHING

    def can_cancel_auto_upload(self, post: Post) -> bool:
        return (
            post.is_failed
            and post.should_attempt_auto_upload
            and post.status is not PostStatus.DRAFT
        )


class FailedPostsFetcher:
    """Pairs every failed post in the store with its retry action."""

    def __init__(self, store: PostStore, interactor: PostAutoUploadInteractor) -> None:
        self._store = store
        self._interactor = interactor

    def posts_and_retry_actions(self) -> list[tuple[Post, AutoUploadAction]]:
        return [(post, self._interactor.auto_upload_action(post)) for post in self._store.failed()]


class RetryScanner:
    """Hands every retryable failed post back to the coordinator."""

    def __init__(self, fetcher: FailedPostsFetcher, coordinator: "PostCoordinator") -> None:
        self._fetcher = fetcher
        self._coordinator = coordinator

    def resume(self) -> dict[AutoUploadAction, int]:
        """Dispatch retries and return how many posts went to each action."""
        counts = {action: 0 for action in AutoUploadAction}
        for post, action in self._fetcher.posts_and_retry_actions():
            counts[action] += 1
            LOGGER.info(
                "Resuming failed post",
                extra={
                    "event": "scanner.dispatch",
                    "post_id": post.post_id,
                    "action": action.value,
                    "attempts": post.auto_upload_attempts_count,
                },
            )
            if action is AutoUploadAction.UPLOAD:
                self._coordinator.save(post, automated_retry=True)
            elif action is AutoUploadAction.UPLOAD_AS_DRAFT:
                self._coordinator.save(post, automated_retry=True, force_draft_if_creating=True)
            elif action is AutoUploadAction.AUTOSAVE:
                self._coordinator.auto_save(post, automated_retry=True)
        return counts


__all__ = ["AutoUploadAction", "FailedPostsFetcher", "PostAutoUploadInteractor", "RetryScanner"]
