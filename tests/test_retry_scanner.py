"""Tests for retry decisions on failed posts."""

from __future__ import annotations

from pathlib import Path

import pytest

from post_uploader.app.post_store import JsonPostStore
from post_uploader.services.models import Blog, Post, PostStatus, RemoteStatus
from post_uploader.services.retry_scanner import (
    AutoUploadAction,
    FailedPostsFetcher,
    PostAutoUploadInteractor,
    RetryScanner,
)


def _failed_post(**fields: object) -> Post:
    defaults: dict[str, object] = {
        "remote_status": RemoteStatus.FAILED,
        "should_attempt_auto_upload": True,
    }
    defaults.update(fields)
    return Post(blog=Blog(blog_id=1, url="https://site.example.com"), title="Retry me", **defaults)


class RecordingCoordinator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def save(self, post: Post, **kwargs: object) -> None:
        self.calls.append(("save", post.post_id, kwargs))

    def auto_save(self, post: Post, **kwargs: object) -> None:
        self.calls.append(("auto_save", post.post_id, kwargs))


class TestPostAutoUploadInteractor:
    @pytest.fixture
    def interactor(self) -> PostAutoUploadInteractor:
        return PostAutoUploadInteractor(max_attempts=3)

    def test_new_draft_is_uploaded_as_draft(self, interactor: PostAutoUploadInteractor) -> None:
        post = _failed_post(status=PostStatus.DRAFT)
        assert interactor.auto_upload_action(post) is AutoUploadAction.UPLOAD_AS_DRAFT

    def test_draft_with_flag_off_is_left_alone(self, interactor: PostAutoUploadInteractor) -> None:
        post = _failed_post(status=PostStatus.DRAFT, should_attempt_auto_upload=False)
        assert interactor.auto_upload_action(post) is AutoUploadAction.NOTHING

    def test_remote_draft_is_still_uploaded_as_draft(self, interactor: PostAutoUploadInteractor) -> None:
        post = _failed_post(status=PostStatus.DRAFT, remote_id=12)
        assert interactor.auto_upload_action(post) is AutoUploadAction.UPLOAD_AS_DRAFT

    def test_remote_draft_with_flag_off_is_left_alone(self, interactor: PostAutoUploadInteractor) -> None:
        post = _failed_post(status=PostStatus.DRAFT, remote_id=12, should_attempt_auto_upload=False)
        assert interactor.auto_upload_action(post) is AutoUploadAction.NOTHING

    def test_cancelled_remote_post_is_autosaved(self, interactor: PostAutoUploadInteractor) -> None:
        post = _failed_post(status=PostStatus.PUBLISH, remote_id=12, should_attempt_auto_upload=False)
        assert interactor.auto_upload_action(post) is AutoUploadAction.AUTOSAVE

    @pytest.mark.parametrize(
        "status",
        [PostStatus.PUBLISH, PostStatus.PRIVATE, PostStatus.PENDING, PostStatus.SCHEDULED],
    )
    def test_other_allowed_statuses_upload(
        self, interactor: PostAutoUploadInteractor, status: PostStatus
    ) -> None:
        assert interactor.auto_upload_action(_failed_post(status=status)) is AutoUploadAction.UPLOAD

    def test_nothing_for_trash_synced_or_exhausted_posts(
        self, interactor: PostAutoUploadInteractor
    ) -> None:
        assert interactor.auto_upload_action(_failed_post(status=PostStatus.TRASH)) is AutoUploadAction.NOTHING
        assert (
            interactor.auto_upload_action(_failed_post(remote_status=RemoteStatus.SYNC))
            is AutoUploadAction.NOTHING
        )
        assert (
            interactor.auto_upload_action(
                _failed_post(status=PostStatus.PUBLISH, auto_upload_attempts_count=3)
            )
            is AutoUploadAction.NOTHING
        )

    def test_can_cancel_only_pending_non_draft_uploads(
        self, interactor: PostAutoUploadInteractor
    ) -> None:
        assert interactor.can_cancel_auto_upload(_failed_post(status=PostStatus.PUBLISH))
        assert not interactor.can_cancel_auto_upload(_failed_post(status=PostStatus.DRAFT))


def test_resume_dispatches_each_action(tmp_path: Path) -> None:
    store = JsonPostStore(tmp_path)
    new_draft = store.add(_failed_post(status=PostStatus.DRAFT))
    remote_draft = store.add(_failed_post(status=PostStatus.DRAFT, remote_id=5))
    cancelled = store.add(
        _failed_post(status=PostStatus.PUBLISH, remote_id=6, should_attempt_auto_upload=False)
    )
    published = store.add(_failed_post(status=PostStatus.PUBLISH))
    store.add(_failed_post(status=PostStatus.PUBLISH, should_attempt_auto_upload=False))
    store.add(Post(blog=Blog(blog_id=1, url="https://site.example.com"), remote_status=RemoteStatus.SYNC))
    coordinator = RecordingCoordinator()

    counts = RetryScanner(FailedPostsFetcher(store, PostAutoUploadInteractor()), coordinator).resume()

    assert sorted(coordinator.calls, key=lambda call: call[1]) == sorted(
        [
            ("save", new_draft.post_id, {"automated_retry": True, "force_draft_if_creating": True}),
            ("save", remote_draft.post_id, {"automated_retry": True, "force_draft_if_creating": True}),
            ("auto_save", cancelled.post_id, {"automated_retry": True}),
            ("save", published.post_id, {"automated_retry": True}),
        ],
        key=lambda call: call[1],
    )
    assert counts[AutoUploadAction.NOTHING] == 1
    assert counts[AutoUploadAction.UPLOAD] == 1
    assert counts[AutoUploadAction.UPLOAD_AS_DRAFT] == 2
    assert counts[AutoUploadAction.AUTOSAVE] == 1
