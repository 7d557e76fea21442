"""Contracts for notification records and push delivery."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class NotificationType(str, Enum):
  LIKE = "like"
  COMMENT = "comment"
  FOLLOW = "follow"
  MENTION = "mention"


@dataclass(frozen=True)
class PushMessage:
  """Payload shown by the background agent; only title and body are required."""

  title: str
  body: str
  icon: str | None = None
  url: str | None = None
  tag: str | None = None

  def to_payload(self) -> dict[str, str]:
    """Serialize the recognized fields, omitting unset optionals."""
    payload = {"title": self.title, "body": self.body}
    for key in ("icon", "url", "tag"):
      value = getattr(self, key)
      if value:
        payload[key] = value
    return payload


@dataclass(frozen=True)
class PushNotification:
  """Represents one push delivery attempt to one endpoint."""

  endpoint: str
  p256dh: str
  auth: str
  message: PushMessage


@dataclass(frozen=True)
class DeliveryResult:
  """Outcome of a fan-out to every endpoint of one recipient."""

  successful: int
  failed: int
  removed: int = 0

  @property
  def attempted(self) -> int:
    return self.successful + self.failed


@dataclass(frozen=True)
class WriteResult:
  """Outcome of writing one notification row; callers decide how to react."""

  status: str
  notification_id: uuid.UUID | None = None
  recipient_id: uuid.UUID | None = None
  reason: str | None = None
  push_scheduled: bool = False

  @property
  def created(self) -> bool:
    return self.status == "created"

  @classmethod
  def skipped(cls, reason: str, *, recipient_id: uuid.UUID | None = None) -> WriteResult:
    return cls(status="skipped", recipient_id=recipient_id, reason=reason)

  @classmethod
  def failed(cls, reason: str, *, recipient_id: uuid.UUID | None = None) -> WriteResult:
    return cls(status="failed", recipient_id=recipient_id, reason=reason)


@dataclass(frozen=True)
class NotificationRecord:
  """Plain view of a persisted notification row."""

  id: uuid.UUID
  user_id: uuid.UUID
  type: str
  data: dict[str, Any] = field(default_factory=dict)
  read: bool = False
  created_at: Any = None

  def with_read(self, read: bool) -> NotificationRecord:
    return NotificationRecord(id=self.id, user_id=self.user_id, type=self.type, data=self.data, read=read, created_at=self.created_at)


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when the push network rejects a delivery."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class InvalidPushSubscriptionError(NotificationProviderError):
  """Exception raised when a push subscription endpoint is expired or gone."""


class TransientPushProviderError(NotificationProviderError):
  """Exception raised for any other push delivery failure."""


class SubscriptionLookupError(NotificationError):
  """Exception raised when the subscription store cannot be read."""


class PushSender(Protocol):
  """Delivery contract for sending push notifications."""

  def send(self, notification: PushNotification) -> None:
    """Send a push notification synchronously."""


class PushDispatcher(Protocol):
  """Anything that can fan a message out to every device of one user."""

  async def deliver(self, user_id: uuid.UUID, message: PushMessage) -> DeliveryResult:
    """Deliver a message to every registered endpoint of a user."""
