"""Test configuration: environment defaults and a stubbed service container on app state."""

from __future__ import annotations

import os

os.environ.setdefault("AGARA_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("AGARA_ENV", "test")

import uuid  # noqa: E402
from dataclasses import replace  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from agara.config import get_settings  # noqa: E402
from agara.main import app  # noqa: E402
from agara.notifications.delivery import FanOutDeliveryService  # noqa: E402
from agara.notifications.factory import NotificationServices  # noqa: E402
from agara.notifications.push_subscription_repo import PushSubscriptionEntry  # noqa: E402
from agara.realtime.change_feed import ChangeFeedHub  # noqa: E402

VALID_P256DH = "BEl6f5Y8X5Y_u7d8mV_AbpZfXfTLT3s1O3L4wM1x8QY2_5qWQ-jxJq7uKjv8mQ4I"
VALID_AUTH = "gq8Yh5xA9l2mQ6pR"


def make_subscription(user_id: uuid.UUID, suffix: str = "abc") -> PushSubscriptionEntry:
  return PushSubscriptionEntry(id=uuid.uuid4(), user_id=user_id, endpoint=f"https://fcm.googleapis.com/fcm/send/{suffix}", p256dh=VALID_P256DH, auth=VALID_AUTH)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def test_settings():
  return replace(get_settings(), push_notifications_enabled=True, push_vapid_public_key="BPublicKeyForTests", push_vapid_private_key="private-key-for-tests")


@pytest.fixture
def push_sender():
  return MagicMock()


@pytest.fixture
def services(test_settings, push_sender):
  """Install stubbed repositories and a real fan-out service on the app."""
  subscription_repo = AsyncMock()
  subscription_repo.list_for_user.return_value = []
  delivery = FanOutDeliveryService(subscription_repo=subscription_repo, sender=push_sender)
  container = NotificationServices(
    settings=test_settings,
    subscription_repo=subscription_repo,
    in_app_repo=AsyncMock(),
    profile_repo=AsyncMock(),
    delivery=delivery,
    notification_service=AsyncMock(),
    hub=ChangeFeedHub(),
    listener=None,
  )
  app.state.services = container
  yield container
  del app.state.services


@pytest.fixture
def user_id() -> uuid.UUID:
  return uuid.uuid4()


@pytest.fixture
def user_headers(user_id) -> dict[str, str]:
  return {"X-User-Id": str(user_id)}
