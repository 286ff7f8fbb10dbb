from __future__ import annotations

"""Process-level settings, read from environment variables at startup.

Tuning constants for the analytics fold live in analytics.config; this module
only covers deployment concerns (which store, which blob backend, secrets).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

STORE_BACKENDS = ("sqlite", "redis", "memory")
BLOB_BACKENDS = ("local", "s3", "none")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    store_backend: str = "sqlite"
    db_path: str = os.path.join(BASE_DIR, "var", "ratedem.sqlite3")
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "ratedem:v1:"
    blob_backend: str = "local"
    blob_dir: str = os.path.join(BASE_DIR, "var", "blobs")
    s3_bucket: Optional[str] = None
    s3_prefix: str = "ratedem/"
    admin_token: str = ""
    backup_interval_seconds: int = 300
    cors_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"


def _choice(env: Mapping[str, str], name: str, default: str, allowed: Tuple[str, ...]) -> str:
    raw = (env.get(name) or default).strip().lower()
    if raw not in allowed:
        raise ConfigError(f"{name} must be one of {list(allowed)} (got {raw!r})")
    return raw


def _non_negative_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return int(default)
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer (got {raw!r})") from exc
    if value < 0:
        raise ConfigError(f"{name} must be >= 0 (got {value})")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment. Fail-loud on invalid values."""
    e = os.environ if env is None else env
    defaults = Settings()

    store_backend = _choice(e, "RATEDEM_STORE_BACKEND", defaults.store_backend, STORE_BACKENDS)
    blob_backend = _choice(e, "RATEDEM_BLOB_BACKEND", defaults.blob_backend, BLOB_BACKENDS)

    s3_bucket = (e.get("RATEDEM_S3_BUCKET") or "").strip() or None
    if blob_backend == "s3" and not s3_bucket:
        raise ConfigError("RATEDEM_S3_BUCKET is required when RATEDEM_BLOB_BACKEND=s3")

    key_prefix = e.get("RATEDEM_KEY_PREFIX")
    if key_prefix is None:
        key_prefix = defaults.key_prefix
    key_prefix = key_prefix.strip()
    if not key_prefix:
        raise ConfigError("RATEDEM_KEY_PREFIX must not be empty")

    origins_raw = (e.get("RATEDEM_CORS_ORIGINS") or "*").strip()
    cors_origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip()) or ("*",)

    log_level = (e.get("RATEDEM_LOG_LEVEL") or defaults.log_level).strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"RATEDEM_LOG_LEVEL must be one of {list(LOG_LEVELS)} (got {log_level!r})")

    return Settings(
        store_backend=store_backend,
        db_path=str(Path(e.get("RATEDEM_DB_PATH") or defaults.db_path)),
        redis_url=(e.get("RATEDEM_REDIS_URL") or defaults.redis_url).strip(),
        key_prefix=key_prefix,
        blob_backend=blob_backend,
        blob_dir=str(Path(e.get("RATEDEM_BLOB_DIR") or defaults.blob_dir)),
        s3_bucket=s3_bucket,
        s3_prefix=(e.get("RATEDEM_S3_PREFIX") or defaults.s3_prefix).strip(),
        admin_token=(e.get("RATEDEM_ADMIN_TOKEN") or "").strip(),
        backup_interval_seconds=_non_negative_int(
            e, "RATEDEM_BACKUP_INTERVAL_SECONDS", defaults.backup_interval_seconds
        ),
        cors_origins=cors_origins,
        log_level=log_level,
    )
