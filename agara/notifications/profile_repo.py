"""Read helpers for member profiles and write helpers for mention rows."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import insert, select

from agara.core.database import get_session_factory
from agara.schema.mentions import Mention
from agara.schema.profiles import Profile


@dataclass(frozen=True)
class ProfileSummary:
  """The subset of a profile that notifications need."""

  id: uuid.UUID
  username: str
  full_name: str
  avatar_url: str | None = None


def _summary(row: Profile) -> ProfileSummary:
  return ProfileSummary(id=row.id, username=row.username, full_name=row.full_name, avatar_url=row.avatar_url)


class ProfileRepository:
  """Look up profiles by id or username."""

  async def get_by_id(self, *, user_id: uuid.UUID) -> ProfileSummary | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      result = await session.execute(select(Profile).where(Profile.id == user_id))
      row = result.scalar_one_or_none()
      return _summary(row) if row is not None else None

  async def get_by_usernames(self, *, usernames: Iterable[str]) -> dict[str, ProfileSummary]:
    """Resolve usernames in one query; unknown names are absent from the result."""
    names = list(dict.fromkeys(usernames))
    session_factory = get_session_factory()
    if session_factory is None or not names:
      return {}

    async with session_factory() as session:
      result = await session.execute(select(Profile).where(Profile.username.in_(names)))
      return {row.username: _summary(row) for row in result.scalars().all()}

  async def search_by_username(self, *, prefix: str, limit: int = 5) -> list[ProfileSummary]:
    """Case-insensitive username prefix search used by mention autocomplete."""
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    # Escape LIKE wildcards so user input only matches literally.
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    async with session_factory() as session:
      stmt = select(Profile).where(Profile.username.ilike(f"{escaped}%", escape="\\")).order_by(Profile.username).limit(limit)
      result = await session.execute(stmt)
      return [_summary(row) for row in result.scalars().all()]


class MentionRepository:
  """Persist mention rows linking a post or comment to the mentioned member."""

  async def insert(self, *, mentioned_user_id: uuid.UUID, mentioned_by: uuid.UUID, post_id: uuid.UUID | None = None, comment_id: uuid.UUID | None = None) -> None:
    session_factory = get_session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await session.execute(insert(Mention).values(mentioned_user_id=mentioned_user_id, mentioned_by=mentioned_by, post_id=post_id, comment_id=comment_id))
      await session.commit()
