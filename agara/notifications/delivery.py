"""Best-effort fan-out of one push message to every device of one recipient."""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
import uuid
from enum import Enum

from starlette.concurrency import run_in_threadpool

from agara.notifications.contracts import DeliveryResult, InvalidPushSubscriptionError, NotificationProviderError, PushDispatcher, PushMessage, PushNotification, PushSender, SubscriptionLookupError
from agara.notifications.push_sender import VapidConfig, WebPushSender
from agara.notifications.push_subscription_repo import PushSubscriptionEntry, PushSubscriptionRepository

logger = logging.getLogger(__name__)


class _Outcome(str, Enum):
  SENT = "sent"
  GONE = "gone"
  FAILED = "failed"


def _endpoint_host(endpoint: str) -> str:
  return urllib.parse.urlparse(endpoint).hostname or "<unknown>"


class FanOutDeliveryService(PushDispatcher):
  """Send to every subscription of a user concurrently; one failure never blocks the others."""

  def __init__(self, *, subscription_repo: PushSubscriptionRepository, vapid_config: VapidConfig | None = None, sender: PushSender | None = None) -> None:
    self._subscription_repo = subscription_repo
    self._vapid_config = vapid_config
    self._sender = sender
    self._initialized = sender is not None

  @property
  def initialized(self) -> bool:
    return self._initialized

  def ensure_initialized(self) -> bool:
    """Configure delivery credentials once; later calls are no-ops."""
    if self._initialized:
      return True

    if self._vapid_config is None:
      return False

    self._sender = WebPushSender(vapid_config=self._vapid_config)
    self._initialized = True
    logger.info("Web Push delivery initialized subject=%s", self._vapid_config.sub)
    return True

  async def deliver(self, user_id: uuid.UUID, message: PushMessage) -> DeliveryResult:
    """Deliver to all endpoints of a user and report how many succeeded and failed."""
    self.ensure_initialized()

    try:
      subscriptions = await self._subscription_repo.list_for_user(user_id=user_id)
    except Exception as exc:
      logger.error("Push subscription lookup failed user_id=%s error=%s", user_id, exc, exc_info=True)
      raise SubscriptionLookupError("Failed to fetch subscriptions") from exc

    if not subscriptions:
      logger.debug("No push subscriptions user_id=%s", user_id)
      return DeliveryResult(successful=0, failed=0)

    # All-settled: every endpoint is attempted regardless of what happens to its siblings.
    outcomes = await asyncio.gather(*(self._deliver_one(subscription, message) for subscription in subscriptions), return_exceptions=True)

    successful = sum(1 for outcome in outcomes if outcome is _Outcome.SENT)
    removed = sum(1 for outcome in outcomes if outcome is _Outcome.GONE)
    failed = len(outcomes) - successful
    logger.info("Push fan-out user_id=%s successful=%d failed=%d removed=%d", user_id, successful, failed, removed)
    return DeliveryResult(successful=successful, failed=failed, removed=removed)

  async def _deliver_one(self, subscription: PushSubscriptionEntry, message: PushMessage) -> _Outcome:
    if self._sender is None:
      logger.error("Push delivery skipped; VAPID credentials are not configured endpoint_host=%s", _endpoint_host(subscription.endpoint))
      return _Outcome.FAILED

    notification = PushNotification(endpoint=subscription.endpoint, p256dh=subscription.p256dh, auth=subscription.auth, message=message)
    try:
      await run_in_threadpool(self._sender.send, notification)
      return _Outcome.SENT
    except InvalidPushSubscriptionError as exc:
      logger.info("Removing gone push subscription endpoint_host=%s status=%s", _endpoint_host(subscription.endpoint), exc.status_code)
      return await self._remove(subscription)
    except NotificationProviderError as exc:
      logger.error("Push notification delivery failed (provider error): %s", exc)
      return _Outcome.FAILED
    except Exception as exc:  # noqa: BLE001
      logger.error("Push notification delivery failed: %s", exc, exc_info=True)
      return _Outcome.FAILED

  async def _remove(self, subscription: PushSubscriptionEntry) -> _Outcome:
    try:
      if subscription.id is not None:
        await self._subscription_repo.delete_by_id(subscription_id=subscription.id)
      else:
        await self._subscription_repo.delete_for_user_endpoint(user_id=subscription.user_id, endpoint=subscription.endpoint)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed deleting gone push subscription endpoint_host=%s error=%s", _endpoint_host(subscription.endpoint), exc, exc_info=True)
      return _Outcome.FAILED
    return _Outcome.GONE
