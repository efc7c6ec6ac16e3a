"""Credential lookup for WordPress application passwords."""

from __future__ import annotations

from os import environ
from typing import Mapping


class WordPressCredentialStore:
    """Resolves the username and application password from environment variables."""

    def __init__(
        self,
        *,
        env: Mapping[str, str] | None = None,
        env_username_key: str = "WP_USERNAME",
        env_password_key: str = "WP_APP_PASSWORD",
    ) -> None:
        self._env = env if env is not None else environ
        self._env_username_key = env_username_key
        self._env_password_key = env_password_key

    def load_username(self) -> str:
        return self._require(self._env_username_key)

    def load_password(self) -> str:
        return self._require(self._env_password_key)

    def auth(self) -> tuple[str, str]:
        """Basic-auth pair for ``requests``."""
        return self.load_username(), self.load_password()

    def _require(self, key: str) -> str:
        value = self._env.get(key, "").strip()
        if not value:
            raise RuntimeError(f"Missing environment variable {key}; cannot authenticate with WordPress")
        return value
