"""Tests for post models and notices."""

from __future__ import annotations

from pathlib import Path

import pytest

from post_uploader.services.models import (
    Blog,
    Media,
    MediaType,
    Post,
    PostStatus,
    RemotePost,
    RemoteStatus,
)
from post_uploader.services.notices import (
    auto_upload_cancelled_notice,
    deletion_notice,
    upload_failure_notice,
    upload_success_notice,
)

BLOG = Blog(blog_id=None, url="https://site.example.com")


@pytest.mark.parametrize(
    ("mime_type", "expected"),
    [
        ("image/png", MediaType.IMAGE),
        ("video/mp4", MediaType.VIDEO),
        ("audio/mpeg", MediaType.AUDIO),
        ("application/pdf", MediaType.DOCUMENT),
        (None, MediaType.DOCUMENT),
    ],
)
def test_media_type_from_mime(mime_type: str | None, expected: MediaType) -> None:
    assert MediaType.from_mime(mime_type) is expected


def test_post_round_trips_through_dict() -> None:
    post = Post(blog=BLOG, title="Trip", status=PostStatus.PRIVATE, remote_id=12)
    post.media.append(Media(local_path=Path("/tmp/a.jpg"), media_type=MediaType.IMAGE))

    restored = Post.from_dict(post.to_dict())

    assert restored.post_id == post.post_id
    assert restored.status is PostStatus.PRIVATE
    assert restored.remote_id == 12
    assert restored.media[0].gutenberg_upload_id == post.media[0].gutenberg_upload_id
    assert restored.media[0].local_path == Path("/tmp/a.jpg")


def test_gutenberg_upload_ids_are_negative() -> None:
    media = Media(local_path=Path("/tmp/a.jpg"), media_type=MediaType.IMAGE)
    assert media.gutenberg_upload_id < 0


def test_local_post_falls_back_to_draft_when_failed() -> None:
    post = Post(blog=BLOG, status=PostStatus.PUBLISH)

    post.mark_as_failed_and_draft_if_needed()

    assert post.remote_status is RemoteStatus.FAILED
    assert post.status is PostStatus.DRAFT


def test_remote_post_keeps_status_when_failed() -> None:
    post = Post(blog=BLOG, status=PostStatus.PUBLISH, remote_id=3)

    post.mark_as_failed_and_draft_if_needed()

    assert post.status is PostStatus.PUBLISH


def test_remote_post_from_response() -> None:
    remote = RemotePost.from_response(
        {
            "id": 9,
            "status": "future",
            "link": "https://site.example.com/?p=9",
            "date_gmt": "2030-01-01T10:00:00",
            "content": {"raw": "<p>x</p>", "rendered": "<p>x</p>\n"},
        }
    )

    assert remote is not None
    assert remote.status is PostStatus.SCHEDULED
    assert remote.date_gmt is not None and remote.date_gmt.tzinfo is not None
    assert remote.content == "<p>x</p>"


def test_remote_post_without_id_is_rejected() -> None:
    assert RemotePost.from_response({"status": "draft"}) is None
    assert RemotePost.from_response({"id": 0}) is None


def test_success_notice_wording() -> None:
    page = Post(blog=BLOG, title="About", post_type="page", status=PostStatus.PUBLISH)
    page.is_first_time_publish = True

    assert upload_success_notice(page).title == "Page published"
    page.is_first_time_publish = False
    assert upload_success_notice(page).title == "Page updated"
    assert upload_success_notice(Post(blog=BLOG)).message == "(no title)"


def test_failure_notice_mentions_pending_retry() -> None:
    post = Post(blog=BLOG, status=PostStatus.PUBLISH, should_attempt_auto_upload=True)

    notice = upload_failure_notice(post)

    assert notice.title == "We'll publish the post when the connection is back"
    assert notice.action_title == "Retry"
    assert upload_failure_notice(post, media_failed=True).title == "Unable to upload media for this post"


def test_cancel_and_delete_notices() -> None:
    post = Post(blog=BLOG, status=PostStatus.SCHEDULED)

    assert auto_upload_cancelled_notice(post).title == "Post will not be scheduled"
    assert deletion_notice(post, permanently=True).title == "Post deleted permanently"
    assert deletion_notice(post, permanently=False).title == "Post moved to trash"
