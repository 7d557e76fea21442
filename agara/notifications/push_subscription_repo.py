"""Repository helpers for Web Push subscription persistence."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import delete, exists, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from agara.core.database import get_session_factory
from agara.notifications.in_app_repo import NotificationDatabaseUnavailableError
from agara.schema.push_subscriptions import PushSubscription


@dataclass(frozen=True)
class PushSubscriptionEntry:
  """Capture a single web push subscription for storage."""

  user_id: uuid.UUID
  endpoint: str
  p256dh: str
  auth: str
  platform: str = "web"
  id: uuid.UUID | None = None


class PushSubscriptionRepository:
  """Persist and manage push subscriptions in Postgres."""

  async def upsert(self, entry: PushSubscriptionEntry) -> None:
    """Insert a subscription or refresh the keys of an existing (user, endpoint) row."""
    session_factory = get_session_factory()
    if session_factory is None:
      raise NotificationDatabaseUnavailableError("Database connection is not configured.")

    async with session_factory() as session:
      await self._upsert_with_session(session=session, entry=entry)

  async def _upsert_with_session(self, *, session: AsyncSession, entry: PushSubscriptionEntry) -> None:
    # The unique (user_id, endpoint) constraint makes concurrent subscribes collapse into one row.
    stmt = insert(PushSubscription).values(user_id=entry.user_id, endpoint=entry.endpoint, p256dh=entry.p256dh, auth=entry.auth, platform=entry.platform)
    stmt = stmt.on_conflict_do_update(constraint="ux_push_subscriptions_user_endpoint", set_={"p256dh": entry.p256dh, "auth": entry.auth, "platform": entry.platform})
    await session.execute(stmt)
    await session.commit()

  async def exists(self, *, user_id: uuid.UUID, endpoint: str) -> bool:
    """Report whether the store holds a row for this user and endpoint."""
    session_factory = get_session_factory()
    if session_factory is None:
      return False

    async with session_factory() as session:
      stmt = select(exists().where(PushSubscription.user_id == user_id, PushSubscription.endpoint == endpoint))
      result = await session.execute(stmt)
      return bool(result.scalar())

  async def list_for_user(self, *, user_id: uuid.UUID) -> list[PushSubscriptionEntry]:
    """List all push subscriptions for a user."""
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      return await self._list_for_user_with_session(session=session, user_id=user_id)

  async def _list_for_user_with_session(self, *, session: AsyncSession, user_id: uuid.UUID) -> list[PushSubscriptionEntry]:
    stmt = select(PushSubscription).where(PushSubscription.user_id == user_id)
    result = await session.execute(stmt)
    rows = result.scalars().all()
    return [PushSubscriptionEntry(id=row.id, user_id=row.user_id, endpoint=row.endpoint, p256dh=row.p256dh, auth=row.auth, platform=row.platform) for row in rows]

  async def delete_for_user_endpoint(self, *, user_id: uuid.UUID, endpoint: str) -> int:
    """Delete a subscription for a specific user and endpoint; returns rows removed."""
    session_factory = get_session_factory()
    if session_factory is None:
      return 0

    async with session_factory() as session:
      # Constrain delete by user ownership so users cannot remove other devices.
      stmt = delete(PushSubscription).where(PushSubscription.user_id == user_id, PushSubscription.endpoint == endpoint)
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0)

  async def delete_by_id(self, *, subscription_id: uuid.UUID) -> None:
    """Delete one subscription row, used when the push network reports it gone."""
    session_factory = get_session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await session.execute(delete(PushSubscription).where(PushSubscription.id == subscription_id))
      await session.commit()
