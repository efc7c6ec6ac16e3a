"""Wires the services used by the command-line interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import requests

from ..platforms.base import NoticeSink, PostCoordinatorDelegate
from ..platforms.wordpress import (
    VideoPressUrlResolver,
    WordPressApiClient,
    WordPressCredentialStore,
    WordPressMediaCoordinator,
    WordPressPostService,
)
from ..services.events import PostEvents
from ..services.media_tracker import MediaReadinessTracker
from ..services.models import Blog
from ..services.notices import LoggingNoticeSink
from ..services.post_coordinator import PostCoordinator
from ..services.retry_scanner import FailedPostsFetcher, PostAutoUploadInteractor, RetryScanner
from ..services.search_index import InMemorySearchIndex
from ..settings import AppConfig
from .post_store import JsonPostStore


@dataclass(slots=True)
class Container:
    config: AppConfig
    blog: Blog
    store: JsonPostStore
    media: WordPressMediaCoordinator
    coordinator: PostCoordinator
    interactor: PostAutoUploadInteractor
    scanner: RetryScanner
    events: PostEvents

    def close(self) -> None:
        """Wait for background uploads, and the submissions they trigger, to finish."""
        self.media.shutdown(wait=True)


def build_container(
    config: AppConfig,
    *,
    notices: NoticeSink | None = None,
    delegate: PostCoordinatorDelegate | None = None,
    env: Mapping[str, str] | None = None,
    session: requests.Session | None = None,
) -> Container:
    session = session or requests.Session()
    credentials = WordPressCredentialStore(
        env=env,
        env_username_key=config.site.username_env,
        env_password_key=config.site.password_env,
    )
    client = WordPressApiClient(
        config.site.api_root, credentials, timeout=config.http.timeout, session=session
    )
    store = JsonPostStore(config.paths.posts_dir)
    media = WordPressMediaCoordinator(
        client,
        store,
        max_workers=config.uploads.media_workers,
        max_auto_upload_failures=config.uploads.max_auto_upload_attempts,
        timeout=config.http.media_timeout,
    )
    events = PostEvents()
    coordinator = PostCoordinator(
        store,
        MediaReadinessTracker(media),
        WordPressPostService(client),
        video_resolver=VideoPressUrlResolver(timeout=config.http.timeout, session=session),
        notices=notices or LoggingNoticeSink(),
        events=events,
        search_index=InMemorySearchIndex(),
        delegate=delegate,
    )
    interactor = PostAutoUploadInteractor(config.uploads.max_auto_upload_attempts)
    scanner = RetryScanner(FailedPostsFetcher(store, interactor), coordinator)
    return Container(
        config=config,
        blog=Blog(blog_id=config.site.blog_id, url=config.site.url),
        store=store,
        media=media,
        coordinator=coordinator,
        interactor=interactor,
        scanner=scanner,
        events=events,
    )


__all__ = ["Container", "build_container"]
