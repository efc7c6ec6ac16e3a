"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from post_uploader.settings import load_config


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_and_relative_paths(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "config.toml",
        '[site]\nurl = "https://site.example.com/"\n\n[http]\ntimeout = 10\n',
    )

    config = load_config(config_path)

    assert config.site.api_root == "https://site.example.com/wp-json"
    assert config.site.username_env == "WP_USERNAME"
    assert config.http.timeout == 10.0
    assert config.http.media_timeout == 40.0
    assert config.paths.state_dir == tmp_path / "state"
    assert config.paths.posts_dir.is_dir()
    assert config.paths.log_file == tmp_path / "state" / "logs" / "post_uploader.log"
    assert config.uploads.max_auto_upload_attempts == 3
    assert config.logging.structured is True


def test_environment_variable_locates_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = _write(
        tmp_path / "custom.toml",
        '[site]\nurl = "https://site.example.com"\nblog_id = 42\n\n'
        '[paths]\nstate_dir = "data"\n\n[uploads]\nmedia_workers = 4\n',
    )
    monkeypatch.setenv("POST_UPLOADER_CONFIG", str(config_path))

    config = load_config()

    assert config.site.blog_id == 42
    assert config.paths.state_dir == tmp_path / "data"
    assert config.uploads.media_workers == 4


def test_missing_site_url_is_rejected(tmp_path: Path) -> None:
    config_path = _write(tmp_path / "config.toml", "[http]\ntimeout = 5\n")

    with pytest.raises(ValueError, match="url"):
        load_config(config_path)


def test_invalid_upload_limits_are_rejected(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "config.toml",
        '[site]\nurl = "https://site.example.com"\n\n[uploads]\nmax_auto_upload_attempts = 0\n',
    )

    with pytest.raises(ValueError, match="max_auto_upload_attempts"):
        load_config(config_path)


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.toml")
