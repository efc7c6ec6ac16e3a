"""WordPress REST API adapters."""

from __future__ import annotations

from .api import WordPressApiClient, WordPressApiError
from .credentials import WordPressCredentialStore
from .media import WordPressMediaCoordinator
from .posts import WordPressPostService
from .video import VideoPressUrlResolver

__all__ = [
    "VideoPressUrlResolver",
    "WordPressApiClient",
    "WordPressApiError",
    "WordPressCredentialStore",
    "WordPressMediaCoordinator",
    "WordPressPostService",
]
