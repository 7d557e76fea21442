from __future__ import annotations

import datetime
import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from agara.notifications.contracts import NotificationRecord
from agara.notifications.in_app_repo import record_to_json
from agara.realtime.change_feed import ChangeFeedHub, PostgresChangeFeedListener, decode_notification_payload


def _record(user_id: uuid.UUID) -> NotificationRecord:
  return NotificationRecord(id=uuid.uuid4(), user_id=user_id, type="follow", data={"user_name": "Zeynep", "user_username": "zeynep"}, created_at=datetime.datetime(2025, 3, 20, 12, 0, tzinfo=datetime.UTC))


def test_hub_routes_rows_to_recipient_only():
  hub = ChangeFeedHub()
  alice, bob = uuid.uuid4(), uuid.uuid4()
  received: list[NotificationRecord] = []
  hub.subscribe(alice, received.append)
  hub.subscribe(bob, lambda record: pytest.fail("wrong recipient"))

  record = _record(alice)

  assert hub.publish(record) == 1
  assert received == [record]


def test_failing_subscriber_does_not_block_others():
  hub = ChangeFeedHub()
  user_id = uuid.uuid4()
  received: list[NotificationRecord] = []

  def _boom(record):
    raise RuntimeError("subscriber crashed")

  hub.subscribe(user_id, _boom)
  hub.subscribe(user_id, received.append)

  assert hub.publish(_record(user_id)) == 1
  assert len(received) == 1


def test_closing_subscription_is_idempotent():
  hub = ChangeFeedHub()
  user_id = uuid.uuid4()
  subscription = hub.subscribe(user_id, lambda record: None)

  subscription.close()
  subscription.close()

  assert hub.subscriber_count() == 0


def test_decode_payload_matches_repository_encoding():
  record = _record(uuid.uuid4())

  decoded = decode_notification_payload(json.dumps(record_to_json(record)))

  assert decoded == record


def test_listener_publishes_decoded_rows_and_drops_malformed_ones():
  hub = MagicMock()
  listener = PostgresChangeFeedListener(hub=hub, dsn="postgresql://localhost/agara", channel="agara_notifications")
  record = _record(uuid.uuid4())

  listener._on_notify(None, 1, "agara_notifications", "{not json")
  listener._on_notify(None, 1, "agara_notifications", json.dumps(record_to_json(record)))

  hub.publish.assert_called_once_with(record)


@pytest.mark.anyio
async def test_listener_start_and_stop(monkeypatch):
  connection = MagicMock()
  connection.is_closed.return_value = False
  connection.add_listener = AsyncMock()
  connection.remove_listener = AsyncMock()
  connection.close = AsyncMock()
  connect = AsyncMock(return_value=connection)
  monkeypatch.setattr("agara.realtime.change_feed.asyncpg.connect", connect)

  listener = PostgresChangeFeedListener(hub=ChangeFeedHub(), dsn="postgresql://localhost/agara", channel="agara_notifications", connect_timeout=3)
  await listener.start()
  await listener.start()

  assert listener.running
  connect.assert_awaited_once_with("postgresql://localhost/agara", timeout=3)
  connection.add_listener.assert_awaited_once_with("agara_notifications", listener._on_notify)

  await listener.stop()

  assert not listener.running
  connection.remove_listener.assert_awaited_once()
  connection.close.assert_awaited_once()
