"""Thin client for the WordPress REST API."""

from __future__ import annotations

import json
from typing import Any, Mapping

import requests

from post_uploader.platforms.base import RemoteServiceError

from .credentials import WordPressCredentialStore


class WordPressApiError(RemoteServiceError):
    """Raised when a WordPress REST call fails."""


class WordPressApiClient:
    """Sends authenticated requests below ``<site>/wp-json``."""

    def __init__(
        self,
        api_root: str,
        credentials: WordPressCredentialStore,
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_root = api_root.rstrip("/")
        self._credentials = credentials
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def api_root(self) -> str:
        return self._api_root

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Perform the call and return the decoded JSON object."""
        url = f"{self._api_root}/{path.lstrip('/')}"
        try:
            response = self._session.request(
                method,
                url,
                json=json_body,
                params=params,
                files=files,
                data=data,
                auth=self._credentials.auth(),
                timeout=timeout or self._timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise self._http_error(method, url, exc) from exc
        except requests.RequestException as exc:
            raise WordPressApiError(
                "Could not reach the WordPress site",
                details={"method": method, "url": url, "reason": str(exc)},
            ) from exc

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise WordPressApiError(
                "Could not parse the WordPress response",
                status_code=response.status_code,
                details={"url": url, "response": response.text[:200]},
            ) from exc

        if not isinstance(payload, dict):
            raise WordPressApiError(
                "Unexpected WordPress response",
                status_code=response.status_code,
                details={"url": url, "response": str(payload)[:200]},
            )
        return payload

    @staticmethod
    def _http_error(method: str, url: str, exc: requests.HTTPError) -> WordPressApiError:
        response = exc.response
        status_code = response.status_code if response is not None else None
        details: dict[str, Any] = {"method": method, "url": url}
        message = "WordPress rejected the request"
        if response is not None:
            try:
                body = response.json()
            except (json.JSONDecodeError, ValueError):
                details["response"] = response.text[:200]
            else:
                if isinstance(body, dict):
                    details["code"] = body.get("code")
                    message = body.get("message") or message
        return WordPressApiError(message, status_code=status_code, details=details)
