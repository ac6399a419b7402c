"""Configuration helpers for the generation service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from dotenv import load_dotenv

from .errors import ConfigError

_SERVER_DIR = Path(__file__).resolve().parent.parent
ENV_FILES = (".env", ".env.local")

_Number = TypeVar("_Number", int, float)


def load_env_files(base_dir: Path = _SERVER_DIR) -> List[Path]:
    """Populate ``os.environ`` from ``.env`` and then ``.env.local`` in ``base_dir``.

    Variables already exported in the process win over ``.env``; ``.env.local``
    holds developer overrides and wins over both. Returns the files that exist.
    """

    loaded = []
    for name in ENV_FILES:
        path = Path(base_dir) / name
        if path.is_file():
            load_dotenv(path, override=name == ".env.local")
            loaded.append(path)
    return loaded


def _env(name: str, default: Optional[str] = None):
    return field(default_factory=lambda: os.getenv(name, default))


def _parse_number(name: str, default: _Number, convert: Callable[[str], _Number]) -> _Number:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return convert(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_float(name: str, default: float):
    return field(default_factory=lambda: _parse_number(name, default, float))


def _env_int(name: str, default: int):
    return field(default_factory=lambda: _parse_number(name, default, int))


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Values are read when the instance is created, so tests can construct a fresh
    ``Settings()`` after patching the environment. Secrets are optional here and
    validated by :meth:`require_secrets` where the clients are built; a numeric
    variable that does not parse raises :class:`ConfigError` right away.
    """

    uploadcare_public_key: Optional[str] = _env("UPLOADCARE_PUBLIC_KEY")
    replicate_api_token: Optional[str] = _env("REPLICATE_API_TOKEN")
    replicate_base_url: str = _env("REPLICATE_BASE_URL", "https://api.replicate.com")
    uploadcare_upload_url: str = _env("UPLOADCARE_UPLOAD_URL", "https://upload.uploadcare.com/base/")
    uploadcare_cdn_base: str = _env("UPLOADCARE_CDN_BASE", "https://ucarecdn.com")
    model_output_dir: str = _env("MODEL_OUTPUT_DIR", "generated_models")
    # "download" keeps a verified local copy, "direct" hands the remote URL to the viewer
    materialize_mode: str = _env("MATERIALIZE_MODE", "download")
    poll_interval_seconds: float = _env_float("POLL_INTERVAL_SECONDS", 2.0)
    max_poll_attempts: int = _env_int("MAX_POLL_ATTEMPTS", 60)
    http_timeout_seconds: float = _env_float("HTTP_TIMEOUT_SECONDS", 60.0)
    log_level: str = _env("LOG_LEVEL", "INFO")

    @property
    def output_dir(self) -> Path:
        return Path(self.model_output_dir).expanduser()

    def require_secrets(self) -> None:
        """Raise :class:`ConfigError` naming every missing secret or an out-of-range value."""

        missing = [
            name
            for name, value in (
                ("UPLOADCARE_PUBLIC_KEY", self.uploadcare_public_key),
                ("REPLICATE_API_TOKEN", self.replicate_api_token),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
        if self.materialize_mode not in {"download", "direct"}:
            raise ConfigError(
                f"MATERIALIZE_MODE must be 'download' or 'direct', got {self.materialize_mode!r}"
            )
        if self.max_poll_attempts < 1:
            raise ConfigError(f"MAX_POLL_ATTEMPTS must be at least 1, got {self.max_poll_attempts}")
        if self.poll_interval_seconds < 0:
            raise ConfigError(f"POLL_INTERVAL_SECONDS must not be negative, got {self.poll_interval_seconds:g}")
        if self.http_timeout_seconds <= 0:
            raise ConfigError(f"HTTP_TIMEOUT_SECONDS must be positive, got {self.http_timeout_seconds:g}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    load_env_files()
    return Settings()
