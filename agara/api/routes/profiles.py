from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query

from agara.api.deps import get_profile_repo
from agara.core.security import get_current_user_id
from agara.notifications.profile_repo import ProfileRepository

router = APIRouter()


@router.get("/search")
async def search_profiles(
  q: str = Query(min_length=1, max_length=50, pattern=r"^\w+$"),  # noqa: B008
  limit: int = Query(5, ge=1, le=20),  # noqa: B008
  _: uuid.UUID = Depends(get_current_user_id),  # noqa: B008
  repo: ProfileRepository = Depends(get_profile_repo),  # noqa: B008
) -> list[dict[str, Any]]:
  """Username prefix search for @mention autocomplete."""
  profiles = await repo.search_by_username(prefix=q, limit=limit)
  return [{"id": str(profile.id), "username": profile.username, "full_name": profile.full_name, "avatar_url": profile.avatar_url} for profile in profiles]
