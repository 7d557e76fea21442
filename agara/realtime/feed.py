"""Live notification list and unread count for one signed-in recipient."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

from agara.notifications.contracts import NotificationRecord
from agara.notifications.in_app_repo import InAppNotificationRepository
from agara.realtime.change_feed import ChangeFeedHub, ChangeFeedSubscription
from agara.realtime.toasts import DEFAULT_TOAST_DURATION_MS, Toast, build_toast

logger = logging.getLogger(__name__)


class FeedState(str, Enum):
  UNINITIALIZED = "uninitialized"
  LISTENING = "listening"
  TORN_DOWN = "torn_down"


@dataclass(frozen=True)
class FeedEvent:
  """A newly inserted notification together with the toast it produced."""

  notification: NotificationRecord
  toast: Toast
  unread_count: int


@dataclass
class PendingOperation:
  """An optimistic read-state change awaiting confirmation from the store."""

  kind: str
  notification_ids: list[uuid.UUID] = field(default_factory=list)


class FeedClosedError(RuntimeError):
  """Raised when a torn-down feed is started again."""


class NotificationFeed:
  """Subscribe to a recipient's inserts, keep the list current and emit toasts.

  Read-state changes are applied locally first. If the store rejects them the
  local change is reverted, so the list never drifts from what was persisted.
  """

  def __init__(self, *, user_id: uuid.UUID, repo: InAppNotificationRepository, hub: ChangeFeedHub, initial_limit: int = 20, toast_duration_ms: int = DEFAULT_TOAST_DURATION_MS) -> None:
    self.user_id = user_id
    self._repo = repo
    self._hub = hub
    self._initial_limit = initial_limit
    self._toast_duration_ms = toast_duration_ms
    self._subscription: ChangeFeedSubscription | None = None
    self._events: asyncio.Queue[FeedEvent | None] = asyncio.Queue()
    self.state = FeedState.UNINITIALIZED
    self.notifications: list[NotificationRecord] = []
    self.pending: list[PendingOperation] = []
    self._raced_inserts: list[NotificationRecord] | None = None

  @property
  def unread_count(self) -> int:
    return sum(1 for notification in self.notifications if not notification.read)

  async def start(self) -> None:
    """Fetch the newest notifications once, then listen for inserts."""
    if self.state is FeedState.TORN_DOWN:
      raise FeedClosedError("Notification feed was already torn down.")
    if self.state is FeedState.LISTENING:
      return

    # Listen before fetching so a row inserted mid-fetch is not lost; duplicates are dropped by id.
    self._subscription = self._hub.subscribe(self.user_id, self._on_insert)
    self.state = FeedState.LISTENING
    await self.refresh()

  async def refresh(self) -> None:
    """Replace the list with the newest stored rows, keeping inserts that raced the fetch."""
    self._raced_inserts = []
    try:
      fetched = await self._repo.list_recent(user_id=self.user_id, limit=self._initial_limit)
      raced = self._raced_inserts
    finally:
      self._raced_inserts = None

    fetched_ids = {notification.id for notification in fetched}
    self.notifications = [notification for notification in raced if notification.id not in fetched_ids] + fetched

  def _on_insert(self, record: NotificationRecord) -> None:
    if self.state is not FeedState.LISTENING or record.user_id != self.user_id:
      return
    if any(notification.id == record.id for notification in self.notifications):
      return

    self.notifications.insert(0, record)
    if self._raced_inserts is not None:
      self._raced_inserts.insert(0, record)
    toast = build_toast(record, duration_ms=self._toast_duration_ms)
    self._events.put_nowait(FeedEvent(notification=record, toast=toast, unread_count=self.unread_count))

  async def next_event(self) -> FeedEvent | None:
    """Wait for the next insert; returns None once the feed is torn down."""
    return await self._events.get()

  async def mark_as_read(self, notification_id: uuid.UUID) -> bool:
    """Mark one notification read locally, confirm remotely, revert on failure."""
    operation = PendingOperation(kind="mark_read", notification_ids=[notification_id])
    changed = self._set_read([notification_id], read=True)
    self.pending.append(operation)
    try:
      updated = await self._repo.mark_read(user_id=self.user_id, notification_id=notification_id)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Mark-as-read failed; reverting notification_id=%s error=%s", notification_id, exc)
      updated = False
    finally:
      self.pending.remove(operation)

    if not updated:
      self._set_read(changed, read=False)
    return updated

  async def mark_all_as_read(self) -> bool:
    """Mark every notification read locally, confirm remotely, revert on failure."""
    unread_ids = [notification.id for notification in self.notifications if not notification.read]
    operation = PendingOperation(kind="mark_all_read", notification_ids=unread_ids)
    changed = self._set_read(unread_ids, read=True)
    self.pending.append(operation)
    try:
      await self._repo.mark_all_read(user_id=self.user_id)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Mark-all-as-read failed; reverting count=%d error=%s", len(changed), exc)
      self._set_read(changed, read=False)
      return False
    finally:
      self.pending.remove(operation)
    return True

  def _set_read(self, notification_ids: list[uuid.UUID], *, read: bool) -> list[uuid.UUID]:
    """Flip read flags in place; returns the ids whose flag actually changed."""
    targets = set(notification_ids)
    changed: list[uuid.UUID] = []
    for index, notification in enumerate(self.notifications):
      if notification.id in targets and notification.read != read:
        self.notifications[index] = notification.with_read(read)
        changed.append(notification.id)
    return changed

  async def close(self) -> None:
    if self.state is FeedState.TORN_DOWN:
      return
    if self._subscription is not None:
      self._subscription.close()
      self._subscription = None
    self.state = FeedState.TORN_DOWN
    self._events.put_nowait(None)

  async def __aenter__(self) -> NotificationFeed:
    await self.start()
    return self

  async def __aexit__(self, *exc_info: object) -> None:
    await self.close()
