from __future__ import annotations

import datetime
import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from agara.main import app
from agara.notifications.contracts import NotificationRecord


def _record(user_id: uuid.UUID, *, read: bool = False, minutes_ago: int = 5) -> NotificationRecord:
  created_at = datetime.datetime.now(datetime.UTC) - datetime.timedelta(minutes=minutes_ago)
  return NotificationRecord(id=uuid.uuid4(), user_id=user_id, type="like", data={"user_id": str(uuid.uuid4()), "user_name": "Ayşe", "user_username": "ayse", "post_id": "p1"}, read=read, created_at=created_at)


@pytest.fixture
def client(services):
  return TestClient(app)


@pytest.fixture
def records(services, user_id):
  rows = [_record(user_id), _record(user_id, read=True, minutes_ago=90)]
  services.in_app_repo.list_recent.return_value = rows
  services.in_app_repo.unread_count.return_value = 1
  return rows


def test_list_requires_identity(client):
  assert client.get("/api/notifications").status_code == 401


def test_list_includes_rendered_text(client, services, records, user_headers, user_id):
  response = client.get("/api/notifications", params={"limit": 50}, headers=user_headers)

  assert response.status_code == 200
  body = response.json()
  assert body["unread_count"] == 1
  first = body["notifications"][0]
  assert first["id"] == str(records[0].id)
  assert first["text"] == "Ayşe gönderini beğendi"
  assert first["time_ago"] == "5 dk önce"
  assert body["notifications"][1]["time_ago"] == "1 saat önce"
  services.in_app_repo.list_recent.assert_awaited_once_with(user_id=user_id, limit=50, offset=0)


def test_list_limit_is_capped_at_fifty(client, records, user_headers):
  assert client.get("/api/notifications", params={"limit": 51}, headers=user_headers).status_code == 422


def test_mark_read(client, services, user_headers, user_id):
  notification_id = uuid.uuid4()
  services.in_app_repo.mark_read.return_value = True

  response = client.post(f"/api/notifications/{notification_id}/read", headers=user_headers)

  assert response.status_code == 200
  services.in_app_repo.mark_read.assert_awaited_once_with(user_id=user_id, notification_id=notification_id)


def test_mark_read_of_foreign_row_is_404(client, services, user_headers):
  services.in_app_repo.mark_read.return_value = False
  assert client.post(f"/api/notifications/{uuid.uuid4()}/read", headers=user_headers).status_code == 404


def test_mark_all_read(client, services, user_headers):
  services.in_app_repo.mark_all_read.return_value = 3

  response = client.post("/api/notifications/read-all", headers=user_headers)

  assert response.status_code == 200
  assert response.json() == {"updated": 3}


def test_stream_rejects_missing_identity(client):
  with pytest.raises(WebSocketDisconnect):
    with client.websocket_connect("/api/notifications/stream"):
      pass


def test_stream_sends_snapshot_and_applies_commands(client, services, records, user_headers, user_id):
  services.in_app_repo.mark_read.return_value = True

  with client.websocket_connect("/api/notifications/stream", headers=user_headers) as websocket:
    snapshot = websocket.receive_json()
    assert snapshot["type"] == "snapshot"
    assert [item["id"] for item in snapshot["notifications"]] == [str(record.id) for record in records]
    assert snapshot["unread_count"] == 1
    assert services.hub.subscriber_count(user_id) == 1

    websocket.send_json({"action": "mark_read", "id": str(records[0].id)})
    reply = websocket.receive_json()
    assert reply == {"type": "read", "id": str(records[0].id), "ok": True, "unread_count": 0}

    websocket.send_text("not json")
    assert websocket.receive_json()["type"] == "error"

  services.in_app_repo.mark_read.assert_awaited_once_with(user_id=user_id, notification_id=records[0].id)


def test_stream_reverts_failed_mark_all(client, services, records, user_headers):
  services.in_app_repo.mark_all_read.side_effect = RuntimeError("update failed")

  with client.websocket_connect("/api/notifications/stream", headers=user_headers) as websocket:
    websocket.receive_json()
    websocket.send_json({"action": "mark_all_read"})
    assert websocket.receive_json() == {"type": "read_all", "ok": False, "unread_count": 1}
