"""Activity hooks: called after a like, comment, follow or mention has been saved."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from agara.api.deps import get_notification_service
from agara.core.security import get_current_user_id
from agara.notifications.contracts import WriteResult
from agara.notifications.service import NotificationService

router = APIRouter()


class LikeActivity(BaseModel):
  post_id: uuid.UUID
  post_owner_id: uuid.UUID
  model_config = ConfigDict(extra="forbid")


class CommentActivity(BaseModel):
  post_id: uuid.UUID
  post_owner_id: uuid.UUID
  comment_text: str = Field(min_length=1, max_length=5000)
  comment_id: uuid.UUID | None = None
  model_config = ConfigDict(extra="forbid")


class FollowActivity(BaseModel):
  followed_id: uuid.UUID
  model_config = ConfigDict(extra="forbid")


class MentionActivity(BaseModel):
  text: str = Field(min_length=1, max_length=5000)
  post_id: uuid.UUID | None = None
  comment_id: uuid.UUID | None = None
  model_config = ConfigDict(extra="forbid")


def _result_json(result: WriteResult) -> dict[str, Any]:
  return {
    "status": result.status,
    "notification_id": str(result.notification_id) if result.notification_id else None,
    "recipient_id": str(result.recipient_id) if result.recipient_id else None,
    "reason": result.reason,
    "push_scheduled": result.push_scheduled,
  }


@router.post("/like")
async def like_activity(payload: LikeActivity, actor_id: uuid.UUID = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)) -> dict[str, Any]:  # noqa: B008
  result = await service.notify_like(actor_id=actor_id, post_owner_id=payload.post_owner_id, post_id=payload.post_id)
  return _result_json(result)


@router.post("/comment")
async def comment_activity(payload: CommentActivity, actor_id: uuid.UUID = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)) -> dict[str, Any]:  # noqa: B008
  result = await service.notify_comment(actor_id=actor_id, post_owner_id=payload.post_owner_id, post_id=payload.post_id, comment_text=payload.comment_text, comment_id=payload.comment_id)
  return _result_json(result)


@router.post("/follow")
async def follow_activity(payload: FollowActivity, actor_id: uuid.UUID = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)) -> dict[str, Any]:  # noqa: B008
  result = await service.notify_follow(actor_id=actor_id, followed_id=payload.followed_id)
  return _result_json(result)


@router.post("/mentions")
async def mention_activity(payload: MentionActivity, actor_id: uuid.UUID = Depends(get_current_user_id), service: NotificationService = Depends(get_notification_service)) -> dict[str, Any]:  # noqa: B008
  """Notify every distinct member mentioned in a post or comment body."""
  results = await service.notify_mentions(actor_id=actor_id, text=payload.text, post_id=payload.post_id, comment_id=payload.comment_id)
  return {"results": [_result_json(result) for result in results]}
