"""Shared FastAPI dependencies resolving services from app state."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from agara.notifications.delivery import FanOutDeliveryService
from agara.notifications.factory import NotificationServices
from agara.notifications.in_app_repo import InAppNotificationRepository
from agara.notifications.profile_repo import ProfileRepository
from agara.notifications.push_subscription_repo import PushSubscriptionRepository
from agara.notifications.service import NotificationService


def get_services(request: Request) -> NotificationServices:
  services = getattr(request.app.state, "services", None)
  if services is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up")
  return services


def get_delivery_service(request: Request) -> FanOutDeliveryService:
  return get_services(request).delivery


def get_subscription_repo(request: Request) -> PushSubscriptionRepository:
  return get_services(request).subscription_repo


def get_notification_repo(request: Request) -> InAppNotificationRepository:
  return get_services(request).in_app_repo


def get_profile_repo(request: Request) -> ProfileRepository:
  return get_services(request).profile_repo


def get_notification_service(request: Request) -> NotificationService:
  return get_services(request).notification_service
