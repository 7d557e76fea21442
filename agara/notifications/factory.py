"""Factory helpers for notification services."""

from __future__ import annotations

from dataclasses import dataclass

from agara.config import Settings
from agara.core.database import plain_database_url
from agara.notifications.contracts import PushDispatcher
from agara.notifications.delivery import FanOutDeliveryService
from agara.notifications.in_app_repo import InAppNotificationRepository
from agara.notifications.profile_repo import MentionRepository, ProfileRepository
from agara.notifications.push_sender import VapidConfig
from agara.notifications.push_subscription_repo import PushSubscriptionRepository
from agara.notifications.service import NotificationService
from agara.push.client import PushApiClient
from agara.realtime.change_feed import ChangeFeedHub, PostgresChangeFeedListener


@dataclass
class NotificationServices:
  """Everything request handlers need, built once per process and stored on app state."""

  settings: Settings
  subscription_repo: PushSubscriptionRepository
  in_app_repo: InAppNotificationRepository
  profile_repo: ProfileRepository
  delivery: FanOutDeliveryService
  notification_service: NotificationService
  hub: ChangeFeedHub
  listener: PostgresChangeFeedListener | None


def build_notification_services(settings: Settings) -> NotificationServices:
  """Construct the notification pipeline based on environment configuration."""
  subscription_repo = PushSubscriptionRepository()
  realtime_channel = settings.change_feed_channel if settings.realtime_enabled else None
  in_app_repo = InAppNotificationRepository(change_feed_channel=realtime_channel)
  profile_repo = ProfileRepository()

  # Without a keypair every attempt counts as failed rather than silently dropped.
  vapid_config = None
  if settings.push_notifications_enabled and settings.push_vapid_public_key and settings.push_vapid_private_key:
    vapid_config = VapidConfig(public_key=settings.push_vapid_public_key, private_key=settings.push_vapid_private_key, sub=settings.push_vapid_sub)
  delivery = FanOutDeliveryService(subscription_repo=subscription_repo, vapid_config=vapid_config)

  push_dispatcher: PushDispatcher = delivery
  if settings.push_dispatch == "http" and settings.api_base_url:
    push_dispatcher = PushApiClient(base_url=settings.api_base_url)

  notification_service = NotificationService(in_app_repo=in_app_repo, profile_repo=profile_repo, mention_repo=MentionRepository(), push_dispatcher=push_dispatcher, push_enabled=settings.push_notifications_enabled)

  hub = ChangeFeedHub()
  listener = None
  dsn = plain_database_url(settings.pg_dsn)
  if realtime_channel and dsn:
    listener = PostgresChangeFeedListener(hub=hub, dsn=dsn, channel=realtime_channel, connect_timeout=settings.pg_connect_timeout)

  return NotificationServices(
    settings=settings, subscription_repo=subscription_repo, in_app_repo=in_app_repo, profile_repo=profile_repo, delivery=delivery, notification_service=notification_service, hub=hub, listener=listener
  )
