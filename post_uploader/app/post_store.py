"""JSON-file persistence for posts."""

from __future__ import annotations

import json
import tempfile
import threading
from pathlib import Path
from typing import Callable

from post_uploader.platforms.base import PostStore
from post_uploader.services.models import Post

from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

# Ids of recently deleted posts; late writes for them are dropped.
_DELETED_HISTORY = 1024


class JsonPostStore(PostStore):
    """Keeps one JSON document per post under ``root``.

    Each post is loaded once and the same instance is handed out afterwards,
    so mutations made through :meth:`perform` are visible to every holder.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._posts: dict[str, Post] = {}
        self._post_locks: dict[str, threading.RLock] = {}
        self._deleted: dict[str, None] = {}
        self._load_all()

    def path_for(self, post_id: str) -> Path:
        return self._root / f"{post_id}.json"

    def add(self, post: Post) -> Post:
        with self._lock:
            self._deleted.pop(post.post_id, None)
            self._posts[post.post_id] = post
        return self.perform(post)

    def perform(self, post: Post, mutate: Callable[[Post], None] | None = None) -> Post:
        with self._lock_for(post):
            if mutate is not None:
                mutate(post)
            with self._lock:
                if post.post_id in self._deleted:
                    return post
                self._posts.setdefault(post.post_id, post)
            self._write(post)
        return post

    def get(self, post_id: str) -> Post | None:
        with self._lock:
            return self._posts.get(post_id)

    def all(self) -> list[Post]:
        with self._lock:
            posts = list(self._posts.values())
        return sorted(posts, key=lambda post: post.date_modified_gmt, reverse=True)

    def delete(self, post: Post) -> None:
        with self._lock_for(post):
            with self._lock:
                self._deleted.pop(post.post_id, None)
                self._deleted[post.post_id] = None
                while len(self._deleted) > _DELETED_HISTORY:
                    del self._deleted[next(iter(self._deleted))]
                self._posts.pop(post.post_id, None)
            path = self.path_for(post.post_id)
            if path.exists():
                path.unlink()
            with self._lock:
                self._post_locks.pop(post.post_id, None)
        LOGGER.info("Deleted stored post", extra={"event": "store.delete", "post_id": post.post_id})

    def _lock_for(self, post: Post) -> threading.RLock:
        with self._lock:
            lock = self._post_locks.get(post.post_id)
            if lock is None and post.post_id in self._deleted:
                return threading.RLock()
            if lock is None:
                lock = self._post_locks[post.post_id] = threading.RLock()
            return lock

    def _write(self, post: Post) -> None:
        path = self.path_for(post.post_id)
        data = json.dumps(post.to_dict(), ensure_ascii=False, indent=2)
        with tempfile.NamedTemporaryFile(
            "w", delete=False, dir=str(path.parent), encoding="utf-8", suffix=".tmp"
        ) as tmp:
            tmp.write(data)
            tmp_path = Path(tmp.name)
        tmp_path.replace(path)

    def _load_all(self) -> None:
        for path in sorted(self._root.glob("*.json")):
            try:
                post = Post.from_dict(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError, KeyError, ValueError) as exc:
                LOGGER.warning(
                    "Skipping unreadable post file",
                    extra={"event": "store.load_failed", "path": str(path), "error": str(exc)},
                )
                continue
            self._posts[post.post_id] = post


__all__ = ["JsonPostStore"]
