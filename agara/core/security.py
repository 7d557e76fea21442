"""Caller identity as asserted by the upstream gateway."""

from __future__ import annotations

import uuid

from fastapi import Header, HTTPException, status

USER_ID_HEADER = "X-User-Id"


def parse_user_id(raw: str | None) -> uuid.UUID | None:
  if not raw:
    return None
  try:
    return uuid.UUID(raw.strip())
  except ValueError:
    return None


async def get_current_user_id(x_user_id: str | None = Header(default=None, alias=USER_ID_HEADER)) -> uuid.UUID:  # noqa: B008
  """Resolve the signed-in profile id; sign-in itself happens before requests reach this service."""
  user_id = parse_user_id(x_user_id)
  if user_id is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid user identity")
  return user_id
