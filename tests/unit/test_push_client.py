from __future__ import annotations

import json
import uuid

import httpx
import pytest

from agara.notifications.contracts import PushMessage, SubscriptionLookupError
from agara.notifications.push_subscription_repo import PushSubscriptionEntry
from agara.push.client import PushApiClient


def _client(handler) -> PushApiClient:
  return PushApiClient(base_url="http://agara.test/", transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_deliver_posts_user_and_payload():
  seen = {}
  user_id = uuid.uuid4()

  def _handler(request: httpx.Request) -> httpx.Response:
    seen["path"] = request.url.path
    seen["body"] = json.loads(request.content)
    return httpx.Response(200, json={"message": "Sent 2 notifications, 1 failed", "successful": 2, "failed": 1})

  result = await _client(_handler).deliver(user_id, PushMessage(title="Yeni Beğeni", body="Ayşe gönderinizi beğendi", tag="like-1"))

  assert seen["path"] == "/api/push/send"
  assert seen["body"] == {"userId": str(user_id), "payload": {"title": "Yeni Beğeni", "body": "Ayşe gönderinizi beğendi", "tag": "like-1"}}
  assert (result.successful, result.failed) == (2, 1)


@pytest.mark.anyio
async def test_deliver_without_subscriptions_reports_nothing_attempted():
  result = await _client(lambda request: httpx.Response(200, json={"message": "No subscriptions found for user"})).deliver(uuid.uuid4(), PushMessage(title="t", body="b"))

  assert result.attempted == 0


@pytest.mark.anyio
async def test_deliver_maps_lookup_failure():
  client = _client(lambda request: httpx.Response(500, json={"error": "Failed to fetch subscriptions"}))

  with pytest.raises(SubscriptionLookupError):
    await client.deliver(uuid.uuid4(), PushMessage(title="t", body="b"))


@pytest.mark.anyio
async def test_store_calls_carry_user_header():
  user_id = uuid.uuid4()
  requests: list[httpx.Request] = []

  def _handler(request: httpx.Request) -> httpx.Response:
    requests.append(request)
    if request.url.path.endswith("/status"):
      return httpx.Response(200, json={"registered": True})
    return httpx.Response(204)

  client = _client(_handler)
  entry = PushSubscriptionEntry(user_id=user_id, endpoint="https://fcm.googleapis.com/fcm/send/abc", p256dh="p" * 87, auth="a" * 22)

  await client.upsert(entry)
  assert await client.exists(user_id=user_id, endpoint=entry.endpoint) is True
  await client.delete_for_user_endpoint(user_id=user_id, endpoint=entry.endpoint)

  assert [request.method for request in requests] == ["POST", "GET", "DELETE"]
  assert all(request.headers["x-user-id"] == str(user_id) for request in requests)
  assert json.loads(requests[0].content)["keys"] == {"p256dh": "p" * 87, "auth": "a" * 22}
