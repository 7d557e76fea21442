"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from agara.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_VAPID_SUB = "mailto:admin@agarakoyu.com"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Agara notification service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  push_notifications_enabled: bool
  push_vapid_public_key: str | None
  push_vapid_private_key: str | None
  push_vapid_sub: str
  push_dispatch: str
  realtime_enabled: bool
  change_feed_channel: str
  feed_initial_limit: int
  toast_duration_ms: int
  api_base_url: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("AGARA_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("AGARA_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("AGARA_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("AGARA_ENV", "development").lower()
  debug = _parse_bool(os.getenv("AGARA_DEBUG"))

  log_max_bytes = _positive_int("AGARA_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("AGARA_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("AGARA_LOG_BACKUP_COUNT must be zero or a positive integer.")

  push_notifications_enabled = _parse_bool(os.getenv("AGARA_PUSH_NOTIFICATIONS_ENABLED"))
  push_vapid_public_key = _optional_str(os.getenv("AGARA_VAPID_PUBLIC_KEY"))
  push_vapid_private_key = _optional_str(os.getenv("AGARA_VAPID_PRIVATE_KEY"))
  push_vapid_sub = _optional_str(os.getenv("AGARA_VAPID_SUB")) or DEFAULT_VAPID_SUB

  # Push needs the full keypair; the subject identifies the operator to push services.
  if push_notifications_enabled:
    if not push_vapid_public_key:
      raise ValueError("AGARA_VAPID_PUBLIC_KEY must be set when push notifications are enabled.")

    if not push_vapid_private_key:
      raise ValueError("AGARA_VAPID_PRIVATE_KEY must be set when push notifications are enabled.")

  if not (push_vapid_sub.startswith("mailto:") or push_vapid_sub.startswith("https://")):
    raise ValueError("AGARA_VAPID_SUB must start with 'mailto:' or 'https://'.")

  push_dispatch = (os.getenv("AGARA_PUSH_DISPATCH") or "inline").strip().lower()
  if push_dispatch not in {"inline", "http"}:
    raise ValueError("AGARA_PUSH_DISPATCH must be 'inline' or 'http'.")

  api_base_url = _optional_str(os.getenv("AGARA_API_BASE_URL"))
  if push_dispatch == "http" and not api_base_url:
    raise ValueError("AGARA_API_BASE_URL must be set when AGARA_PUSH_DISPATCH is 'http'.")

  change_feed_channel = (os.getenv("AGARA_CHANGE_FEED_CHANNEL") or "agara_notifications").strip()
  if not change_feed_channel.replace("_", "").isalnum():
    raise ValueError("AGARA_CHANGE_FEED_CHANNEL must be alphanumeric (underscores allowed).")

  feed_initial_limit = _positive_int("AGARA_FEED_INITIAL_LIMIT", "20")
  if feed_initial_limit > 50:
    raise ValueError("AGARA_FEED_INITIAL_LIMIT must not exceed 50.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("AGARA_ALLOWED_ORIGINS")),
    debug=debug,
    log_dir=(os.getenv("AGARA_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("AGARA_LOG_HTTP_4XX")),
    pg_dsn=_optional_str(os.getenv("AGARA_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=_positive_int("AGARA_PG_CONNECT_TIMEOUT", "5"),
    push_notifications_enabled=push_notifications_enabled,
    push_vapid_public_key=push_vapid_public_key,
    push_vapid_private_key=push_vapid_private_key,
    push_vapid_sub=push_vapid_sub,
    push_dispatch=push_dispatch,
    realtime_enabled=_parse_bool(os.getenv("AGARA_REALTIME_ENABLED"), default=True),
    change_feed_channel=change_feed_channel,
    feed_initial_limit=feed_initial_limit,
    toast_duration_ms=_positive_int("AGARA_TOAST_DURATION_MS", "6000"),
    api_base_url=api_base_url,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("AGARA_DEBUG"))
  pg_connect_timeout = _positive_int("AGARA_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = _optional_str(os.getenv("AGARA_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
