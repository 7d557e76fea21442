"""Push subscription lifecycle on the client runtime.

The manager sits between the runtime's permission and push-registration
primitives (`PushPlatform`) and the subscription store. Every failure is soft:
methods log and return `None` / `False`, nothing is retried automatically.
"""

from __future__ import annotations

import base64
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from agara.notifications.push_subscription_repo import PushSubscriptionEntry

logger = logging.getLogger(__name__)

AGENT_SCRIPT_URL = "/sw.js"
AGENT_SCOPE = "/"


class PermissionState(str, Enum):
  DEFAULT = "default"
  GRANTED = "granted"
  DENIED = "denied"
  UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class PlatformSubscription:
  """A push subscription as issued by the runtime."""

  endpoint: str
  p256dh: str
  auth: str
  expiration_time: int | None = None


class PushPlatform(Protocol):
  """Runtime primitives: background agent, permission prompt and push manager."""

  def supports_background_agent(self) -> bool: ...

  def supports_push(self) -> bool: ...

  def supports_notifications(self) -> bool: ...

  async def register_agent(self, script_url: str, *, scope: str) -> Any: ...

  def permission(self) -> str: ...

  async def request_permission(self) -> str: ...

  async def get_subscription(self) -> PlatformSubscription | None: ...

  async def create_subscription(self, *, application_server_key: bytes) -> PlatformSubscription: ...

  async def cancel_subscription(self, subscription: PlatformSubscription) -> bool: ...


class SubscriptionStore(Protocol):
  """Where subscriptions are mirrored: the repository or the HTTP API."""

  async def upsert(self, entry: PushSubscriptionEntry) -> None: ...

  async def exists(self, *, user_id: uuid.UUID, endpoint: str) -> bool: ...

  async def delete_for_user_endpoint(self, *, user_id: uuid.UUID, endpoint: str) -> int: ...


def url_base64_to_bytes(value: str) -> bytes:
  """Decode a base64url VAPID key, restoring the padding browsers omit."""
  padding = "=" * (-len(value) % 4)
  return base64.urlsafe_b64decode(value + padding)


class SubscriptionLifecycleManager:
  """Request permission, register the agent and keep the store in step with the runtime."""

  def __init__(self, *, platform: PushPlatform, store: SubscriptionStore, vapid_public_key: str | None, platform_name: str = "web") -> None:
    self._platform = platform
    self._store = store
    self._vapid_public_key = vapid_public_key
    self._platform_name = platform_name

  def check_support(self) -> bool:
    return self._platform.supports_background_agent() and self._platform.supports_push() and self._platform.supports_notifications()

  async def register_agent(self) -> Any | None:
    """Register the background agent at the root scope; safe to call repeatedly."""
    if not self._platform.supports_background_agent():
      logger.info("Background agent not supported")
      return None

    try:
      return await self._platform.register_agent(AGENT_SCRIPT_URL, scope=AGENT_SCOPE)
    except Exception as exc:  # noqa: BLE001
      logger.error("Background agent registration failed: %s", exc)
      return None

  def get_permission_state(self) -> PermissionState:
    if not self._platform.supports_notifications():
      return PermissionState.UNSUPPORTED
    try:
      return PermissionState(self._platform.permission())
    except ValueError:
      return PermissionState.DEFAULT

  async def request_permission(self) -> PermissionState:
    """Show the native prompt once; must be called from a user gesture."""
    if not self._platform.supports_notifications():
      return PermissionState.DENIED

    try:
      state = PermissionState(await self._platform.request_permission())
    except Exception as exc:  # noqa: BLE001
      logger.error("Notification permission request failed: %s", exc)
      return PermissionState.DENIED
    logger.info("Notification permission: %s", state.value)
    return state

  async def subscribe(self, user_id: uuid.UUID) -> PlatformSubscription | None:
    """Reuse or create the runtime subscription and mirror it into the store."""
    if self.get_permission_state() is not PermissionState.GRANTED:
      logger.info("Push subscribe skipped; permission not granted user_id=%s", user_id)
      return None

    if not self._vapid_public_key:
      logger.error("VAPID public key is not configured")
      return None

    try:
      subscription = await self._platform.get_subscription()
      if subscription is None:
        subscription = await self._platform.create_subscription(application_server_key=url_base64_to_bytes(self._vapid_public_key))

      # Upsert on (user_id, endpoint) so a repeated subscribe never creates a second row.
      await self._store.upsert(PushSubscriptionEntry(user_id=user_id, endpoint=subscription.endpoint, p256dh=subscription.p256dh, auth=subscription.auth, platform=self._platform_name))
    except Exception as exc:  # noqa: BLE001
      logger.error("Push subscription failed user_id=%s error=%s", user_id, exc)
      return None

    return subscription

  async def unsubscribe(self, user_id: uuid.UUID) -> bool:
    """Cancel the runtime subscription and delete its store row; no subscription counts as success."""
    try:
      subscription = await self._platform.get_subscription()
      if subscription is None:
        return True

      await self._platform.cancel_subscription(subscription)
      await self._store.delete_for_user_endpoint(user_id=user_id, endpoint=subscription.endpoint)
    except Exception as exc:  # noqa: BLE001
      logger.error("Unsubscribe failed user_id=%s error=%s", user_id, exc)
      return False

    return True

  async def is_subscribed(self) -> bool:
    """Whether the runtime holds a subscription; the store is not consulted."""
    if not self._platform.supports_background_agent():
      return False
    try:
      return await self._platform.get_subscription() is not None
    except Exception:  # noqa: BLE001
      return False

  async def is_registered(self, user_id: uuid.UUID) -> bool:
    """Whether the runtime subscription also has a matching store row."""
    try:
      subscription = await self._platform.get_subscription()
      if subscription is None:
        return False
      return await self._store.exists(user_id=user_id, endpoint=subscription.endpoint)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Subscription cross-check failed user_id=%s error=%s", user_id, exc)
      return False
