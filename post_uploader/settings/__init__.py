"""Settings package exports."""

from .loader import (
    AppConfig,
    HttpSettings,
    LoggingSettings,
    PathSettings,
    SiteSettings,
    UploadSettings,
    load_config,
)

__all__ = [
    "AppConfig",
    "HttpSettings",
    "LoggingSettings",
    "PathSettings",
    "SiteSettings",
    "UploadSettings",
    "load_config",
]
