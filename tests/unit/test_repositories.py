from __future__ import annotations

import datetime
import json
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from agara.notifications.in_app_repo import InAppNotificationRepository, NotificationDatabaseUnavailableError
from agara.notifications.push_subscription_repo import PushSubscriptionEntry, PushSubscriptionRepository


class _SessionFactory:
  def __init__(self, session) -> None:
    self.session = session

  def __call__(self):
    return self

  async def __aenter__(self):
    return self.session

  async def __aexit__(self, *exc_info):
    return False


@pytest.fixture
def session():
  return AsyncMock()


@pytest.fixture
def patch_sessions(monkeypatch, session):
  factory = _SessionFactory(session)
  monkeypatch.setattr("agara.notifications.in_app_repo.get_session_factory", lambda: factory)
  monkeypatch.setattr("agara.notifications.push_subscription_repo.get_session_factory", lambda: factory)
  return factory


@pytest.mark.anyio
async def test_insert_announces_row_on_change_feed_before_commit(patch_sessions, session):
  notification_id = uuid.uuid4()
  created_at = datetime.datetime(2025, 3, 20, 12, 0, tzinfo=datetime.UTC)
  insert_result = MagicMock()
  insert_result.one.return_value = SimpleNamespace(id=notification_id, created_at=created_at)
  session.execute.side_effect = [insert_result, MagicMock()]
  user_id = uuid.uuid4()

  record = await InAppNotificationRepository(change_feed_channel="agara_notifications").insert(user_id=user_id, notification_type="follow", data={"user_name": "Zeynep"})

  assert record.id == notification_id and record.read is False
  notify_params = session.execute.await_args_list[1].args[1]
  assert notify_params["channel"] == "agara_notifications"
  assert json.loads(notify_params["payload"]) == {"id": str(notification_id), "user_id": str(user_id), "type": "follow", "data": {"user_name": "Zeynep"}, "read": False, "created_at": created_at.isoformat()}
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_insert_without_channel_skips_notify(patch_sessions, session):
  insert_result = MagicMock()
  insert_result.one.return_value = SimpleNamespace(id=uuid.uuid4(), created_at=None)
  session.execute.return_value = insert_result

  await InAppNotificationRepository().insert(user_id=uuid.uuid4(), notification_type="like", data={})

  assert session.execute.await_count == 1


@pytest.mark.anyio
async def test_insert_without_database_raises(monkeypatch):
  monkeypatch.setattr("agara.notifications.in_app_repo.get_session_factory", lambda: None)

  with pytest.raises(NotificationDatabaseUnavailableError):
    await InAppNotificationRepository().insert(user_id=uuid.uuid4(), notification_type="like", data={})


@pytest.mark.anyio
async def test_mark_read_reports_whether_a_row_changed(patch_sessions, session):
  session.execute.return_value = MagicMock(rowcount=0)

  assert await InAppNotificationRepository().mark_read(user_id=uuid.uuid4(), notification_id=uuid.uuid4()) is False


@pytest.mark.anyio
async def test_subscription_upsert_targets_user_endpoint_constraint(patch_sessions, session):
  entry = PushSubscriptionEntry(user_id=uuid.uuid4(), endpoint="https://fcm.googleapis.com/fcm/send/abc", p256dh="p" * 87, auth="a" * 22)

  await PushSubscriptionRepository().upsert(entry)

  statement = session.execute.await_args.args[0]
  compiled = str(statement.compile(dialect=postgresql.dialect()))
  assert "ON CONFLICT ON CONSTRAINT ux_push_subscriptions_user_endpoint DO UPDATE" in compiled
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_subscription_delete_returns_removed_count(patch_sessions, session):
  session.execute.return_value = MagicMock(rowcount=1)

  removed = await PushSubscriptionRepository().delete_for_user_endpoint(user_id=uuid.uuid4(), endpoint="https://fcm.googleapis.com/fcm/send/abc")

  assert removed == 1


@pytest.mark.anyio
async def test_subscription_upsert_without_database_raises(monkeypatch):
  monkeypatch.setattr("agara.notifications.push_subscription_repo.get_session_factory", lambda: None)
  entry = PushSubscriptionEntry(user_id=uuid.uuid4(), endpoint="https://fcm.googleapis.com/fcm/send/abc", p256dh="p" * 87, auth="a" * 22)

  with pytest.raises(NotificationDatabaseUnavailableError):
    await PushSubscriptionRepository().upsert(entry)
