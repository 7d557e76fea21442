import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from agara.core.database import dispose_engine
from agara.core.env_contract import EnvContractError, validate_runtime_env_or_raise
from agara.core.logging import _initialize_logging
from agara.notifications.factory import build_notification_services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, wire notification services onto app state and run the change-feed listener."""
  from agara.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("agara.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup: logging verified. DSN=%s", _redact_dsn(settings.pg_dsn))
    validate_runtime_env_or_raise(logger=logger, target="service")
  except EnvContractError:
    logger.error("Environment contract failed; refusing to start the service.", exc_info=True)
    raise

  services = build_notification_services(settings)
  app.state.services = services

  # A bad keypair only disables push; in-app notifications keep working.
  if settings.push_notifications_enabled and not services.delivery.ensure_initialized():
    logger.warning("Push delivery could not be initialized; every push attempt will count as failed.")

  if services.listener is not None:
    try:
      await services.listener.start()
    except Exception as exc:  # noqa: BLE001
      logger.warning("Change-feed listener failed to start; realtime updates disabled: %s", exc)
  elif settings.realtime_enabled:
    logger.info("Change-feed listener not started; no database configured.")

  try:
    yield
  finally:
    if services.listener is not None:
      await services.listener.stop()
    await services.notification_service.drain()
    await dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
