"""Change-feed of inserted notification rows, filtered per recipient.

Inserts are announced with Postgres NOTIFY by the notification repository. One
LISTEN connection per process feeds `ChangeFeedHub`, which hands each row to
the subscribers registered for its recipient. Delivery is at-most-once: rows
inserted while the listener is disconnected are never replayed.
"""

from __future__ import annotations

import datetime
import json
import logging
import uuid
from collections.abc import Callable
from typing import Any

import asyncpg

from agara.notifications.contracts import NotificationRecord

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[NotificationRecord], None]


class ChangeFeedSubscription:
  """Handle returned by `ChangeFeedHub.subscribe`; closing it stops delivery."""

  def __init__(self, hub: ChangeFeedHub, user_id: uuid.UUID, callback: ChangeCallback) -> None:
    self._hub = hub
    self.user_id = user_id
    self.callback = callback
    self.closed = False

  def close(self) -> None:
    if not self.closed:
      self._hub._remove(self)
      self.closed = True


class ChangeFeedHub:
  """In-process registry of recipient-scoped insert listeners."""

  def __init__(self) -> None:
    self._subscribers: dict[uuid.UUID, list[ChangeFeedSubscription]] = {}

  def subscribe(self, user_id: uuid.UUID, callback: ChangeCallback) -> ChangeFeedSubscription:
    subscription = ChangeFeedSubscription(self, user_id, callback)
    self._subscribers.setdefault(user_id, []).append(subscription)
    return subscription

  def _remove(self, subscription: ChangeFeedSubscription) -> None:
    subscribers = self._subscribers.get(subscription.user_id)
    if not subscribers:
      return
    if subscription in subscribers:
      subscribers.remove(subscription)
    if not subscribers:
      del self._subscribers[subscription.user_id]

  def subscriber_count(self, user_id: uuid.UUID | None = None) -> int:
    if user_id is not None:
      return len(self._subscribers.get(user_id, []))
    return sum(len(subscribers) for subscribers in self._subscribers.values())

  def publish(self, record: NotificationRecord) -> int:
    """Hand a row to its recipient's subscribers; returns how many received it."""
    delivered = 0
    for subscription in list(self._subscribers.get(record.user_id, [])):
      try:
        subscription.callback(record)
        delivered += 1
      except Exception as exc:  # noqa: BLE001
        logger.error("Change-feed subscriber failed user_id=%s error=%s", record.user_id, exc, exc_info=True)
    return delivered


def decode_notification_payload(payload: str) -> NotificationRecord:
  """Parse a NOTIFY payload produced by the notification repository."""
  raw: dict[str, Any] = json.loads(payload)
  created_at = raw.get("created_at")
  if isinstance(created_at, str):
    created_at = datetime.datetime.fromisoformat(created_at)
  data = raw.get("data")
  return NotificationRecord(id=uuid.UUID(raw["id"]), user_id=uuid.UUID(raw["user_id"]), type=str(raw["type"]), data=data if isinstance(data, dict) else {}, read=bool(raw.get("read", False)), created_at=created_at)


class PostgresChangeFeedListener:
  """Keep one LISTEN connection open and republish notifications into the hub."""

  def __init__(self, *, hub: ChangeFeedHub, dsn: str, channel: str, connect_timeout: int = 5) -> None:
    self._hub = hub
    self._dsn = dsn
    self._channel = channel
    self._connect_timeout = connect_timeout
    self._connection: asyncpg.Connection | None = None

  @property
  def running(self) -> bool:
    return self._connection is not None and not self._connection.is_closed()

  async def start(self) -> None:
    if self.running:
      return
    self._connection = await asyncpg.connect(self._dsn, timeout=self._connect_timeout)
    await self._connection.add_listener(self._channel, self._on_notify)
    logger.info("Change-feed listener started channel=%s", self._channel)

  async def stop(self) -> None:
    connection = self._connection
    self._connection = None
    if connection is None or connection.is_closed():
      return
    try:
      await connection.remove_listener(self._channel, self._on_notify)
    finally:
      await connection.close()
    logger.info("Change-feed listener stopped channel=%s", self._channel)

  def _on_notify(self, connection: Any, pid: int, channel: str, payload: str) -> None:
    try:
      record = decode_notification_payload(payload)
    except (ValueError, KeyError, TypeError) as exc:
      logger.warning("Dropping malformed change-feed payload channel=%s error=%s", channel, exc)
      return
    self._hub.publish(record)
