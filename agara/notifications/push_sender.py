"""Push notification delivery implementations."""

from __future__ import annotations

import json
from dataclasses import dataclass
from http import HTTPStatus

from pywebpush import WebPushException, webpush

from agara.notifications.contracts import InvalidPushSubscriptionError, PushNotification, PushSender, TransientPushProviderError

_GONE_STATUSES = {HTTPStatus.GONE, HTTPStatus.NOT_FOUND}


@dataclass(frozen=True)
class VapidConfig:
  """Keypair and subject identifying this application to the push network."""

  public_key: str
  private_key: str
  sub: str


class WebPushSender(PushSender):
  """`pywebpush` backed sender that classifies endpoint-gone failures."""

  def __init__(self, *, vapid_config: VapidConfig) -> None:
    self._vapid_config = vapid_config

  @property
  def public_key(self) -> str:
    return self._vapid_config.public_key

  def send(self, notification: PushNotification) -> None:
    """Send one Web Push payload; no retry, the library timeout applies."""
    subscription_info = {"endpoint": notification.endpoint, "keys": {"p256dh": notification.p256dh, "auth": notification.auth}}
    try:
      webpush(subscription_info=subscription_info, data=json.dumps(notification.message.to_payload(), ensure_ascii=False), vapid_private_key=self._vapid_config.private_key, vapid_claims={"sub": self._vapid_config.sub})
    except WebPushException as exc:
      status_code = _extract_status_code(exc)

      if status_code in _GONE_STATUSES:
        raise InvalidPushSubscriptionError(f"Push subscription is gone (status={status_code})", status_code=status_code) from exc

      raise TransientPushProviderError(f"Push delivery failed (status={status_code if status_code else 'unknown'})", status_code=status_code) from exc


def _extract_status_code(exc: WebPushException) -> int | None:
  """Extract an HTTP status code from a pywebpush exception when available."""
  response = getattr(exc, "response", None)
  if response is None:
    return None

  status = getattr(response, "status_code", None)
  if isinstance(status, int):
    return status

  return None
