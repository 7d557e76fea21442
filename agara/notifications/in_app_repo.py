"""Repository helpers for in-app notifications."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from sqlalchemy import desc, func, insert, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from agara.core.database import get_session_factory
from agara.notifications.contracts import NotificationRecord
from agara.schema.notifications import Notification

logger = logging.getLogger(__name__)


def to_record(row: Notification) -> NotificationRecord:
  return NotificationRecord(id=row.id, user_id=row.user_id, type=row.type, data=dict(row.data or {}), read=bool(row.read), created_at=row.created_at)


def record_to_json(record: NotificationRecord) -> dict[str, Any]:
  """Shape a notification the way change-feed subscribers and API clients see it."""
  created_at = record.created_at.isoformat() if hasattr(record.created_at, "isoformat") else record.created_at
  return {"id": str(record.id), "user_id": str(record.user_id), "type": record.type, "data": record.data, "read": record.read, "created_at": created_at}


class NotificationDatabaseUnavailableError(RuntimeError):
  """Raised when a write is attempted without a configured database."""


class InAppNotificationRepository:
  """Persist in-app notifications to Postgres and announce inserts on the change-feed channel."""

  def __init__(self, *, change_feed_channel: str | None = None) -> None:
    self._change_feed_channel = change_feed_channel

  async def insert(self, *, user_id: uuid.UUID, notification_type: str, data: dict[str, Any]) -> NotificationRecord:
    """Insert a new notification row and return it."""
    session_factory = get_session_factory()
    if session_factory is None:
      raise NotificationDatabaseUnavailableError("Database connection is not configured.")

    async with session_factory() as session:
      return await self._insert_with_session(session=session, user_id=user_id, notification_type=notification_type, data=data)

  async def _insert_with_session(self, *, session: AsyncSession, user_id: uuid.UUID, notification_type: str, data: dict[str, Any]) -> NotificationRecord:
    stmt = insert(Notification).values(id=uuid.uuid4(), user_id=user_id, type=notification_type, data=data, read=False).returning(Notification.id, Notification.created_at)
    result = await session.execute(stmt)
    row = result.one()
    record = NotificationRecord(id=row.id, user_id=user_id, type=notification_type, data=data, read=False, created_at=row.created_at)

    # NOTIFY is transactional, so listeners only see rows that actually committed.
    if self._change_feed_channel:
      payload = json.dumps(record_to_json(record), ensure_ascii=False)
      await session.execute(text("SELECT pg_notify(:channel, :payload)"), {"channel": self._change_feed_channel, "payload": payload})

    await session.commit()
    return record

  async def list_recent(self, *, user_id: uuid.UUID, limit: int = 20, offset: int = 0) -> list[NotificationRecord]:
    """Fetch the newest notifications for a recipient."""
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      stmt = select(Notification).where(Notification.user_id == user_id).order_by(desc(Notification.created_at)).limit(limit).offset(offset)
      result = await session.execute(stmt)
      return [to_record(row) for row in result.scalars().all()]

  async def unread_count(self, *, user_id: uuid.UUID) -> int:
    session_factory = get_session_factory()
    if session_factory is None:
      return 0

    async with session_factory() as session:
      stmt = select(func.count()).select_from(Notification).where(Notification.user_id == user_id, Notification.read.is_(False))
      result = await session.execute(stmt)
      return int(result.scalar_one())

  async def mark_read(self, *, user_id: uuid.UUID, notification_id: uuid.UUID) -> bool:
    """Mark one notification as read; only the recipient's own rows are touched."""
    session_factory = get_session_factory()
    if session_factory is None:
      raise NotificationDatabaseUnavailableError("Database connection is not configured.")

    async with session_factory() as session:
      stmt = update(Notification).where(Notification.id == notification_id, Notification.user_id == user_id).values(read=True)
      result = await session.execute(stmt)
      await session.commit()
      return bool(result.rowcount)

  async def mark_all_read(self, *, user_id: uuid.UUID) -> int:
    """Mark every unread notification of a recipient as read; returns rows changed."""
    session_factory = get_session_factory()
    if session_factory is None:
      raise NotificationDatabaseUnavailableError("Database connection is not configured.")

    async with session_factory() as session:
      stmt = update(Notification).where(Notification.user_id == user_id, Notification.read.is_(False)).values(read=True)
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0)
