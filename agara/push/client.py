"""HTTP client for the push endpoints of this service."""

from __future__ import annotations

import logging
import uuid

import httpx

from agara.notifications.contracts import DeliveryResult, PushMessage, SubscriptionLookupError
from agara.notifications.push_subscription_repo import PushSubscriptionEntry

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"


class PushApiClient:
  """Mirror subscriptions and trigger fan-out over HTTP instead of in-process."""

  def __init__(self, *, base_url: str, timeout_seconds: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._base_url = base_url.rstrip("/")
    self._timeout_seconds = timeout_seconds
    self._transport = transport

  def _client(self) -> httpx.AsyncClient:
    # Internal calls never go through environment proxies.
    return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout_seconds, transport=self._transport, trust_env=False)

  async def upsert(self, entry: PushSubscriptionEntry) -> None:
    body = {"endpoint": entry.endpoint, "keys": {"p256dh": entry.p256dh, "auth": entry.auth}, "platform": entry.platform}
    async with self._client() as client:
      response = await client.post("/api/push/subscribe", json=body, headers={USER_ID_HEADER: str(entry.user_id)})
      response.raise_for_status()

  async def exists(self, *, user_id: uuid.UUID, endpoint: str) -> bool:
    async with self._client() as client:
      response = await client.get("/api/push/subscriptions/status", params={"endpoint": endpoint}, headers={USER_ID_HEADER: str(user_id)})
      response.raise_for_status()
      return bool(response.json().get("registered"))

  async def delete_for_user_endpoint(self, *, user_id: uuid.UUID, endpoint: str) -> int:
    async with self._client() as client:
      response = await client.request("DELETE", "/api/push/unsubscribe", json={"endpoint": endpoint}, headers={USER_ID_HEADER: str(user_id)})
      response.raise_for_status()
    return 1

  async def deliver(self, user_id: uuid.UUID, message: PushMessage) -> DeliveryResult:
    """Ask the send endpoint to fan a message out to every device of a user."""
    async with self._client() as client:
      try:
        response = await client.post("/api/push/send", json={"userId": str(user_id), "payload": message.to_payload()})
      except httpx.RequestError as exc:
        logger.error("Push send request failed user_id=%s error=%s", user_id, exc)
        raise

    if response.status_code == 500:
      raise SubscriptionLookupError(response.json().get("error", "Failed to send notification"))
    response.raise_for_status()

    body = response.json()
    return DeliveryResult(successful=int(body.get("successful", 0)), failed=int(body.get("failed", 0)))
