"""Runtime environment contract checks for the service and the init script.

Startup logs every key the process depends on, with secrets redacted, and
refuses to boot on violations when `AGARA_ENV_CONTRACT_ENFORCE` is set.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

EnvUseTarget = Literal["service", "init", "both"]
EnvValidator = Callable[[str, dict[str, str]], str | None]


@dataclass(frozen=True)
class EnvVarDefinition:
  """Describe how and where an environment variable must be validated."""

  name: str
  required: bool
  secret: bool
  used_by: EnvUseTarget
  validator: EnvValidator | None = None
  validate_blank: bool = False


class EnvContractError(RuntimeError):
  """Raised when required runtime environment keys are missing or invalid."""


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  if raw is None:
    return default

  return raw.strip().lower() in {"1", "true", "yes", "on"}


def _validate_non_empty(value: str, _: dict[str, str]) -> str | None:
  if value.strip() == "":
    return "must not be empty."

  return None


def _validate_allowed_origins(value: str, _: dict[str, str]) -> str | None:
  origins = [origin.strip() for origin in value.split(",") if origin.strip()]
  if not origins:
    return "must include at least one origin."

  if "*" in origins:
    return "must not include wildcard origins."

  return None


def _validate_environment_name(value: str, _: dict[str, str]) -> str | None:
  normalized = value.strip().lower()
  if normalized in {"dev", "development", "stage", "staging", "prod", "production", "test", "testing"}:
    return None

  return "must be one of: development, stage, production, test (or aliases)."


def _validate_required_if_push_enabled(value: str, env_map: dict[str, str]) -> str | None:
  """VAPID keys are only mandatory once push delivery is switched on."""
  if not _parse_bool(env_map.get("AGARA_PUSH_NOTIFICATIONS_ENABLED")):
    return None

  if value.strip() == "":
    return "must be set when AGARA_PUSH_NOTIFICATIONS_ENABLED is true."

  return None


def _validate_vapid_subject(value: str, _: dict[str, str]) -> str | None:
  if value.startswith("mailto:") or value.startswith("https://"):
    return None

  return "must start with 'mailto:' or 'https://'."


REQUIRED_ENV_REGISTRY: tuple[EnvVarDefinition, ...] = (
  EnvVarDefinition(name="AGARA_ENV", required=True, secret=False, used_by="service", validator=_validate_environment_name),
  EnvVarDefinition(name="AGARA_ALLOWED_ORIGINS", required=True, secret=False, used_by="service", validator=_validate_allowed_origins),
  EnvVarDefinition(name="AGARA_PG_DSN", required=True, secret=True, used_by="both", validator=_validate_non_empty),
  EnvVarDefinition(name="AGARA_PUSH_NOTIFICATIONS_ENABLED", required=False, secret=False, used_by="service"),
  EnvVarDefinition(name="AGARA_VAPID_PUBLIC_KEY", required=False, secret=False, used_by="service", validator=_validate_required_if_push_enabled, validate_blank=True),
  EnvVarDefinition(name="AGARA_VAPID_PRIVATE_KEY", required=False, secret=True, used_by="service", validator=_validate_required_if_push_enabled, validate_blank=True),
  EnvVarDefinition(name="AGARA_VAPID_SUB", required=False, secret=False, used_by="service", validator=_validate_vapid_subject),
  EnvVarDefinition(name="AGARA_REALTIME_ENABLED", required=False, secret=False, used_by="service"),
)


def _iter_applicable_definitions(*, target: Literal["service", "init"]) -> tuple[EnvVarDefinition, ...]:
  return tuple(definition for definition in REQUIRED_ENV_REGISTRY if definition.used_by in {"both", target})


def _resolve_value(*, definition: EnvVarDefinition) -> str:
  raw = os.getenv(definition.name)
  if raw is not None:
    return raw

  # The hosted backend exposes its DSN as DATABASE_URL.
  if definition.name == "AGARA_PG_DSN":
    return os.getenv("DATABASE_URL", "")

  return ""


def list_required_env_names(*, target: Literal["service", "init"]) -> tuple[str, ...]:
  """Expose required key names for deploy automation."""
  return tuple(definition.name for definition in _iter_applicable_definitions(target=target) if definition.required)


def validate_env_values(*, target: Literal["service", "init"], env_map: dict[str, str]) -> list[str]:
  """Validate a provided env map against contract rules for a target process."""
  errors: list[str] = []
  for definition in _iter_applicable_definitions(target=target):
    value = env_map.get(definition.name, "")
    if definition.required and value.strip() == "":
      errors.append(f"{definition.name}: required variable is missing.")
      continue

    if definition.validator and (value.strip() != "" or definition.validate_blank):
      validation_error = definition.validator(value, env_map)
      if validation_error:
        errors.append(f"{definition.name}: {validation_error}")

  return errors


def validate_runtime_env_or_raise(*, logger: logging.Logger, target: Literal["service", "init"]) -> None:
  """Validate and log runtime env values using the centralized contract."""
  enforce = _parse_bool(os.getenv("AGARA_ENV_CONTRACT_ENFORCE"), default=False)
  resolved_values: dict[str, str] = {}
  applicable_definitions = _iter_applicable_definitions(target=target)
  for definition in applicable_definitions:
    value = _resolve_value(definition=definition)
    resolved_values[definition.name] = value
    if definition.secret:
      logger.info("ENV_CHECK key=%s value=<redacted>", definition.name)
    elif value == "":
      logger.info("ENV_CHECK key=%s value=<missing>", definition.name)
    else:
      logger.info("ENV_CHECK key=%s value=%s", definition.name, value)

  errors = validate_env_values(target=target, env_map=resolved_values)

  if not errors:
    logger.info("ENV_CHECK status=ok target=%s checked=%d", target, len(applicable_definitions))
    return

  message = "ENV_CHECK status=failed target={target} violations:\n- {errors}".format(target=target, errors="\n- ".join(errors))
  if enforce:
    logger.error(message)
    raise EnvContractError(message)

  logger.warning("ENV_CHECK enforcement disabled; set AGARA_ENV_CONTRACT_ENFORCE=1 to fail fast")
  logger.warning(message)
