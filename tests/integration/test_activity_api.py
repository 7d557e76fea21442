from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient

from agara.main import app
from agara.notifications.contracts import WriteResult
from agara.notifications.profile_repo import ProfileSummary


@pytest.fixture
def client(services):
  return TestClient(app)


def test_like_hook_returns_write_result(client, services, user_headers, user_id):
  notification_id, owner, post_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
  services.notification_service.notify_like.return_value = WriteResult(status="created", notification_id=notification_id, recipient_id=owner, push_scheduled=True)

  response = client.post("/api/activity/like", json={"post_id": str(post_id), "post_owner_id": str(owner)}, headers=user_headers)

  assert response.status_code == 200
  assert response.json() == {"status": "created", "notification_id": str(notification_id), "recipient_id": str(owner), "reason": None, "push_scheduled": True}
  services.notification_service.notify_like.assert_awaited_once_with(actor_id=user_id, post_owner_id=owner, post_id=post_id)


def test_comment_hook_passes_text(client, services, user_headers, user_id):
  owner, post_id = uuid.uuid4(), uuid.uuid4()
  services.notification_service.notify_comment.return_value = WriteResult.skipped("self_notification", recipient_id=owner)

  response = client.post("/api/activity/comment", json={"post_id": str(post_id), "post_owner_id": str(owner), "comment_text": "Harika!"}, headers=user_headers)

  assert response.json()["status"] == "skipped"
  services.notification_service.notify_comment.assert_awaited_once_with(actor_id=user_id, post_owner_id=owner, post_id=post_id, comment_text="Harika!", comment_id=None)


def test_follow_hook(client, services, user_headers, user_id):
  followed = uuid.uuid4()
  services.notification_service.notify_follow.return_value = WriteResult.failed("notification_insert_failed", recipient_id=followed)

  response = client.post("/api/activity/follow", json={"followed_id": str(followed)}, headers=user_headers)

  assert response.status_code == 200
  assert response.json()["reason"] == "notification_insert_failed"


def test_mentions_hook_lists_results(client, services, user_headers):
  services.notification_service.notify_mentions.return_value = [WriteResult(status="created", notification_id=uuid.uuid4()), WriteResult.skipped("unknown_username")]

  response = client.post("/api/activity/mentions", json={"text": "@mehmet @kimse", "post_id": str(uuid.uuid4())}, headers=user_headers)

  assert [result["status"] for result in response.json()["results"]] == ["created", "skipped"]


def test_activity_requires_identity(client):
  assert client.post("/api/activity/follow", json={"followed_id": str(uuid.uuid4())}).status_code == 401


def test_profile_search_for_mention_autocomplete(client, services, user_headers):
  services.profile_repo.search_by_username.return_value = [ProfileSummary(id=uuid.uuid4(), username="mehmet", full_name="Mehmet Demir")]

  response = client.get("/api/profiles/search", params={"q": "meh"}, headers=user_headers)

  assert response.status_code == 200
  assert response.json()[0]["username"] == "mehmet"
  services.profile_repo.search_by_username.assert_awaited_once_with(prefix="meh", limit=5)


def test_profile_search_rejects_non_word_query(client, user_headers):
  assert client.get("/api/profiles/search", params={"q": "me%"}, headers=user_headers).status_code == 422
