"""Playback URL lookup for uploaded videos."""

from __future__ import annotations

import json

import requests

from post_uploader.services.models import Media, Post

from .api import WordPressApiError


class VideoPressUrlResolver:
    """Resolves the original file URL of a VideoPress upload.

    Videos without a VideoPress guid are served from their media library URL.
    """

    _VIDEO_URL = "https://public-api.wordpress.com/rest/v1.1/videos/{guid}"

    def __init__(self, *, timeout: float = 30.0, session: requests.Session | None = None) -> None:
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch_remote_video_url(self, media: Media, post: Post) -> str:
        if not media.videopress_guid:
            if not media.remote_url:
                raise ValueError(f"Video {media.filename} has no remote URL")
            return media.remote_url

        url = self._VIDEO_URL.format(guid=media.videopress_guid)
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise WordPressApiError(
                "Could not fetch video details",
                details={"guid": media.videopress_guid, "post_id": post.post_id, "reason": str(exc)},
            ) from exc

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise WordPressApiError(
                "Could not parse video details",
                details={"guid": media.videopress_guid, "response": response.text[:200]},
            ) from exc

        original = data.get("original") if isinstance(data, dict) else None
        if not original:
            raise WordPressApiError(
                "Video details have no playable URL",
                details={"guid": media.videopress_guid},
            )
        return str(original)
