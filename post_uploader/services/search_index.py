"""A minimal local search index for uploaded posts."""

from __future__ import annotations

import threading

from .models import Post


class InMemorySearchIndex:
    """Keeps the title and link of indexed posts, keyed by ``post_id``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, dict[str, str | None]] = {}

    def index_item(self, post: Post) -> None:
        with self._lock:
            self._items[post.post_id] = {"title": post.title, "link": post.link}

    def delete_item(self, post: Post) -> None:
        with self._lock:
            self._items.pop(post.post_id, None)

    def search(self, text: str) -> list[str]:
        needle = text.strip().lower()
        with self._lock:
            return [
                post_id
                for post_id, item in self._items.items()
                if needle in (item["title"] or "").lower()
            ]

    def __contains__(self, post_id: object) -> bool:
        with self._lock:
            return post_id in self._items


__all__ = ["InMemorySearchIndex"]
