from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

MIB = 1024 * 1024


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def default_cache_path() -> str:
    base = os.getenv("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return str(Path(base) / "favifetch" / "favicon-cache.sqlite")


@dataclass
class Settings:
    # HTTP
    request_timeout_s: float = 10.0
    user_agent: str = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15"

    # Concurrency / lifecycle
    max_concurrent: int = 3
    shutdown_wait_s: float = 2.0
    batch_stagger_s: float = 0.0

    # Resolution cache
    memory_cache_bytes: int = 50 * MIB
    disk_cache_bytes: int = 50 * MIB
    cache_path: str = ""  # "" => default_cache_path()

    # Fallback lookup service
    fallback_service_url: str = "https://www.google.com/s2/favicons"
    fallback_icon_size: int = 64
    fallback_public_suffix_only: bool = True

    # Logging / UX
    log_level: str = "INFO"
    library_log_level: str = "WARNING"
    no_color: bool = False

    def resolved_cache_path(self) -> Path:
        return Path(self.cache_path or default_cache_path()).expanduser()

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.request_timeout_s = _env_float("FAVI_REQUEST_TIMEOUT_S", s.request_timeout_s)
        s.user_agent = _env_str("FAVI_USER_AGENT", s.user_agent)

        s.max_concurrent = _env_int("FAVI_MAX_CONCURRENT", s.max_concurrent)
        s.shutdown_wait_s = _env_float("FAVI_SHUTDOWN_WAIT_S", s.shutdown_wait_s)
        s.batch_stagger_s = _env_float("FAVI_BATCH_STAGGER_S", s.batch_stagger_s)

        s.memory_cache_bytes = _env_int("FAVI_MEMORY_CACHE_BYTES", s.memory_cache_bytes)
        s.disk_cache_bytes = _env_int("FAVI_DISK_CACHE_BYTES", s.disk_cache_bytes)
        s.cache_path = _env_str("FAVI_CACHE_PATH", s.cache_path)

        s.fallback_service_url = _env_str("FAVI_FALLBACK_SERVICE_URL", s.fallback_service_url)
        s.fallback_icon_size = _env_int("FAVI_FALLBACK_ICON_SIZE", s.fallback_icon_size)
        s.fallback_public_suffix_only = _env_bool("FAVI_FALLBACK_PUBLIC_SUFFIX_ONLY", s.fallback_public_suffix_only)

        s.log_level = _env_str("FAVI_LOG_LEVEL", s.log_level)
        s.library_log_level = _env_str("FAVI_LIBRARY_LOG_LEVEL", s.library_log_level)
        s.no_color = _env_bool("FAVI_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k):
                setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
