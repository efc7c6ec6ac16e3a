"""Errors reported by the post coordinator."""

from __future__ import annotations

from .models import Post


class SavingError(RuntimeError):
    """Base class for failures while preparing or submitting a post."""


class MediaFailureError(SavingError):
    """One or more attachments could not be uploaded."""

    def __init__(self, post: Post) -> None:
        failed = [item.filename for item in post.media if item.has_failed]
        message = f"Media failed to upload for post {post.post_id}"
        if failed:
            message = f"{message}: {', '.join(failed)}"
        super().__init__(message)
        self.post = post


class UnknownSaveError(SavingError):
    """The remote service answered without a usable post."""

    def __init__(self, message: str = "The server returned no post") -> None:
        super().__init__(message)


__all__ = ["MediaFailureError", "SavingError", "UnknownSaveError"]
