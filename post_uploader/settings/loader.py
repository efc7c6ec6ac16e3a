"""Helpers for loading configuration."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

DEFAULT_CONFIG_NAME = "config.toml"
CONFIG_ENV_VAR = "POST_UPLOADER_CONFIG"


@dataclass(slots=True)
class SiteSettings:
    url: str
    blog_id: int | None = None
    username_env: str = "WP_USERNAME"
    password_env: str = "WP_APP_PASSWORD"

    @property
    def api_root(self) -> str:
        return f"{self.url.rstrip('/')}/wp-json"


@dataclass(slots=True)
class HttpSettings:
    timeout: float
    media_timeout: float


@dataclass(slots=True)
class PathSettings:
    state_dir: Path
    log_dir: Path

    @property
    def posts_dir(self) -> Path:
        return self.state_dir / "posts"

    @property
    def log_file(self) -> Path:
        return self.log_dir / "post_uploader.log"


@dataclass(slots=True)
class UploadSettings:
    max_auto_upload_attempts: int = 3
    media_workers: int = 2


@dataclass(slots=True)
class LoggingSettings:
    level: str = "INFO"
    structured: bool = True


@dataclass(slots=True)
class AppConfig:
    site: SiteSettings
    http: HttpSettings
    paths: PathSettings
    uploads: UploadSettings
    logging: LoggingSettings


def _config_path(explicit: str | os.PathLike[str] | None = None) -> Path:
    if explicit:
        return Path(explicit)
    env_value = os.environ.get(CONFIG_ENV_VAR)
    return Path(env_value) if env_value else Path.cwd() / DEFAULT_CONFIG_NAME


def _load_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("rb") as fp:
        return tomllib.load(fp)


def _to_path(value: str | None, *, base: Path, fallback: Path) -> Path:
    if not value:
        return fallback
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else base / candidate


def _ensure_directories(paths: Iterable[Path]) -> None:
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)


def _positive_int(section: dict[str, Any], key: str, default: int) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"[uploads] {key} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"[uploads] {key} must be at least 1, got {value}")
    return value


def load_config(config_path: str | os.PathLike[str] | None = None) -> AppConfig:
    path = _config_path(config_path)
    data = _load_toml(path)
    base = path.resolve().parent

    site_section = data.get("site", {})
    http_section = data.get("http", {})
    paths_section = data.get("paths", {})
    uploads_section = data.get("uploads", {})
    logging_section = data.get("logging", {})

    url = site_section.get("url")
    if not url:
        raise ValueError(f"Missing [site] url in {path}")
    blog_id_raw = site_section.get("blog_id")

    site = SiteSettings(
        url=str(url),
        blog_id=int(blog_id_raw) if blog_id_raw is not None else None,
        username_env=str(site_section.get("username_env", "WP_USERNAME")),
        password_env=str(site_section.get("password_env", "WP_APP_PASSWORD")),
    )

    timeout = float(http_section.get("timeout", 30))
    http_settings = HttpSettings(
        timeout=timeout,
        media_timeout=float(http_section.get("media_timeout", timeout * 4)),
    )

    state_dir = _to_path(paths_section.get("state_dir"), base=base, fallback=base / "state")
    log_dir = _to_path(paths_section.get("log_dir"), base=base, fallback=state_dir / "logs")
    paths = PathSettings(state_dir=state_dir, log_dir=log_dir)
    _ensure_directories((paths.state_dir, paths.posts_dir, paths.log_dir))

    uploads = UploadSettings(
        max_auto_upload_attempts=_positive_int(uploads_section, "max_auto_upload_attempts", 3),
        media_workers=_positive_int(uploads_section, "media_workers", 2),
    )

    logging_settings = LoggingSettings(
        level=str(logging_section.get("level", "INFO")),
        structured=bool(logging_section.get("structured", True)),
    )

    return AppConfig(
        site=site,
        http=http_settings,
        paths=paths,
        uploads=uploads,
        logging=logging_settings,
    )
