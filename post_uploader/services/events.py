"""In-process event emitter for post changes."""

from __future__ import annotations

import threading
import uuid
from typing import Callable, Iterable

from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

POST_UPDATED = "post_updated"
POST_PUBLISHED = "post_published"
POST_SCHEDULED = "post_scheduled"

PostEventCallback = Callable[[str, frozenset[str]], None]


class PostEvents:
    """Broadcasts post-id sets to subscribers, e.g. list views that need a refresh."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, tuple[str, PostEventCallback]] = {}

    def subscribe(self, event: str, callback: PostEventCallback) -> str:
        token = uuid.uuid4().hex
        with self._lock:
            self._subscribers[token] = (event, callback)
        return token

    def unsubscribe(self, token: str) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def emit(self, event: str, post_ids: Iterable[str]) -> None:
        payload = frozenset(post_ids)
        with self._lock:
            targets = [cb for name, cb in self._subscribers.values() if name == event]
        LOGGER.debug(
            "Emitting post event",
            extra={"event": "events.emit", "event_name": event, "post_ids": sorted(payload)},
        )
        for callback in targets:
            callback(event, payload)


__all__ = ["POST_PUBLISHED", "POST_SCHEDULED", "POST_UPDATED", "PostEventCallback", "PostEvents"]
