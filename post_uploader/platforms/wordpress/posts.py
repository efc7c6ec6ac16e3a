"""Post submission through ``/wp/v2/posts`` and ``/wp/v2/pages``."""

from __future__ import annotations

from typing import Any

from post_uploader.services.models import Post, PostStatus, RemotePost

from ...utils.logging import get_logger
from .api import WordPressApiClient

LOGGER = get_logger(__name__)

_WP_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class WordPressPostService:
    """Makes exactly one request per call; retries are the caller's business."""

    def __init__(self, client: WordPressApiClient) -> None:
        self._client = client

    def upload_post(self, post: Post, *, force_draft_if_creating: bool = False) -> RemotePost | None:
        payload = self._build_payload(post)
        if post.has_remote():
            path = f"{self._collection(post)}/{post.remote_id}"
        else:
            path = self._collection(post)
            if force_draft_if_creating:
                payload["status"] = PostStatus.DRAFT.value

        LOGGER.info(
            "Submitting post",
            extra={
                "event": "wordpress.post.upload",
                "post_id": post.post_id,
                "remote_id": post.remote_id,
                "status": payload["status"],
            },
        )
        data = self._client.request("POST", path, json_body=payload)
        return RemotePost.from_response(data)

    def autosave(self, post: Post) -> RemotePost | None:
        """Store an autosave revision; a post unknown to the server is created as a draft."""
        if not post.has_remote():
            return self.upload_post(post, force_draft_if_creating=True)

        path = f"{self._collection(post)}/{post.remote_id}/autosaves"
        data = self._client.request(
            "POST", path, json_body={"title": post.title, "content": post.content}
        )
        # Drafts are updated in place; published posts get a revision whose parent is the post.
        parent = data.get("parent") or data.get("id")
        if not isinstance(parent, int) or parent <= 0:
            return None
        return RemotePost.from_response(
            {
                "id": parent,
                "status": post.status.value,
                "link": post.link,
                "modified_gmt": data.get("modified_gmt"),
            }
        )

    def trash(self, post: Post) -> RemotePost | None:
        path = f"{self._collection(post)}/{post.remote_id}"
        params = {"force": "true"} if post.status is PostStatus.TRASH else None
        LOGGER.info(
            "Deleting post",
            extra={
                "event": "wordpress.post.delete",
                "post_id": post.post_id,
                "remote_id": post.remote_id,
                "force": params is not None,
            },
        )
        data = self._client.request("DELETE", path, params=params)
        previous = data.get("previous")
        return RemotePost.from_response(previous if isinstance(previous, dict) else data)

    @staticmethod
    def _collection(post: Post) -> str:
        return "/wp/v2/pages" if post.is_page else "/wp/v2/posts"

    @staticmethod
    def _build_payload(post: Post) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": post.title,
            "content": post.content,
            "status": post.status.value,
        }
        if post.date_created_gmt is not None:
            payload["date_gmt"] = post.date_created_gmt.strftime(_WP_DATE_FORMAT)
        return payload
