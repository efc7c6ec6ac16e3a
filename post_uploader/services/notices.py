"""User-facing notices emitted by the post coordinator."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TextIO

from ..utils.logging import get_logger
from .models import Post, PostStatus

LOGGER = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class Notice:
    title: str
    message: str = ""
    kind: str = "info"
    action_title: str | None = None
    post_id: str | None = None


def _noun(post: Post) -> str:
    return "Page" if post.is_page else "Post"


def _display_title(post: Post) -> str:
    return post.title.strip() or "(no title)"


def upload_success_notice(post: Post) -> Notice:
    noun = _noun(post)
    if post.is_scheduled():
        title = f"{noun} scheduled"
    elif post.status is PostStatus.PRIVATE:
        title = f"{noun} published privately"
    elif post.status is PostStatus.PUBLISH:
        title = f"{noun} published" if post.is_first_time_publish else f"{noun} updated"
    elif post.status is PostStatus.PENDING:
        title = f"{noun} submitted for review"
    else:
        title = "Draft uploaded"
    return Notice(title=title, message=_display_title(post), kind="success", post_id=post.post_id)


def upload_failure_notice(post: Post, *, media_failed: bool = False) -> Notice:
    """Failure notice with a retry action.

    When the post is still eligible for an automatic retry the wording says so
    instead of asking the user to act.
    """
    noun = _noun(post).lower()
    if media_failed or post.has_failed_media:
        title = f"Unable to upload media for this {noun}"
    elif post.should_attempt_auto_upload:
        verb = "publish" if post.status is not PostStatus.DRAFT else "save"
        title = f"We'll {verb} the {noun} when the connection is back"
    else:
        title = f"Unable to upload this {noun}"
    return Notice(
        title=title,
        message=_display_title(post),
        kind="failure",
        action_title="Retry",
        post_id=post.post_id,
    )


def auto_upload_cancelled_notice(post: Post) -> Notice:
    noun = _noun(post)
    messages = {
        PostStatus.PUBLISH: f"{noun} will not be published",
        PostStatus.PRIVATE: f"{noun} will not be published privately",
        PostStatus.SCHEDULED: f"{noun} will not be scheduled",
        PostStatus.PENDING: f"{noun} will not be submitted for review",
    }
    title = messages.get(post.status, "Changes will not be uploaded")
    return Notice(title=title, post_id=post.post_id)


def deletion_notice(post: Post, *, permanently: bool) -> Notice:
    noun = _noun(post)
    title = f"{noun} deleted permanently" if permanently else f"{noun} moved to trash"
    return Notice(title=title, kind="success", post_id=post.post_id)


def deletion_failure_notice(post: Post, error: BaseException) -> Notice:
    return Notice(
        title=f"Unable to delete this {_noun(post).lower()}",
        message=str(error),
        kind="failure",
        post_id=post.post_id,
    )


class LoggingNoticeSink:
    """Records notices in the log; useful for unattended runs."""

    def dispatch(self, notice: Notice) -> None:
        LOGGER.info(
            notice.title,
            extra={
                "event": "notice.dispatch",
                "kind": notice.kind,
                "notice_message": notice.message,
                "post_id": notice.post_id,
            },
        )


class ConsoleNoticeSink:
    """Prints notices for interactive CLI use."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def dispatch(self, notice: Notice) -> None:
        line = notice.title if not notice.message else f"{notice.title}: {notice.message}"
        print(f"[{notice.kind}] {line}", file=self._stream)


__all__ = [
    "ConsoleNoticeSink",
    "LoggingNoticeSink",
    "Notice",
    "auto_upload_cancelled_notice",
    "deletion_failure_notice",
    "deletion_notice",
    "upload_failure_notice",
    "upload_success_notice",
]
