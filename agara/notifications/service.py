"""Notification record writer: persist a notification, then push it best-effort.

Every interaction handler (like, comment, follow, mention) calls exactly one
method here after its own write succeeded. Each call returns a `WriteResult`
so the caller decides whether a failure matters; nothing is swallowed silently
and nothing is raised for a failed notification write.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from typing import Any

from agara.notifications.contracts import NotificationType, PushDispatcher, PushMessage, WriteResult
from agara.notifications.in_app_repo import InAppNotificationRepository
from agara.notifications.profile_repo import MentionRepository, ProfileRepository, ProfileSummary
from agara.notifications.templates import comment_message, follow_message, like_message, mention_message, preview

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r"@(\w+)")


def extract_mentions(text: str) -> list[str]:
  """Return mentioned usernames once each, in order of first appearance."""
  return list(dict.fromkeys(MENTION_RE.findall(text or "")))


def _actor_data(actor: ProfileSummary) -> dict[str, Any]:
  return {"user_id": str(actor.id), "user_name": actor.full_name, "user_username": actor.username}


class NotificationService:
  """Writes notification rows and schedules push delivery for them."""

  def __init__(self, *, in_app_repo: InAppNotificationRepository, profile_repo: ProfileRepository, mention_repo: MentionRepository, push_dispatcher: PushDispatcher | None, push_enabled: bool) -> None:
    self._in_app_repo = in_app_repo
    self._profile_repo = profile_repo
    self._mention_repo = mention_repo
    self._push_dispatcher = push_dispatcher
    self._push_enabled = push_enabled and push_dispatcher is not None
    self._background_tasks: set[asyncio.Task[None]] = set()

  async def notify_like(self, *, actor_id: uuid.UUID, post_owner_id: uuid.UUID, post_id: uuid.UUID) -> WriteResult:
    """Notify a post owner that someone liked their post."""
    if actor_id == post_owner_id:
      return WriteResult.skipped("self_notification", recipient_id=post_owner_id)

    actor, failure = await self._load_actor(actor_id, recipient_id=post_owner_id)
    if actor is None:
      return failure

    data = {**_actor_data(actor), "post_id": str(post_id)}
    return await self._write(recipient_id=post_owner_id, notification_type=NotificationType.LIKE, data=data, message=like_message(actor_name=actor.full_name, post_id=str(post_id)))

  async def notify_comment(self, *, actor_id: uuid.UUID, post_owner_id: uuid.UUID, post_id: uuid.UUID, comment_text: str, comment_id: uuid.UUID | None = None) -> WriteResult:
    """Notify a post owner about a new comment, carrying a short preview."""
    if actor_id == post_owner_id:
      return WriteResult.skipped("self_notification", recipient_id=post_owner_id)

    actor, failure = await self._load_actor(actor_id, recipient_id=post_owner_id)
    if actor is None:
      return failure

    data = {**_actor_data(actor), "post_id": str(post_id), "comment_preview": preview(comment_text)}
    if comment_id is not None:
      data["comment_id"] = str(comment_id)
    message = comment_message(actor_name=actor.full_name, post_id=str(post_id), comment_text=comment_text)
    return await self._write(recipient_id=post_owner_id, notification_type=NotificationType.COMMENT, data=data, message=message)

  async def notify_follow(self, *, actor_id: uuid.UUID, followed_id: uuid.UUID) -> WriteResult:
    """Notify a member that they gained a follower."""
    if actor_id == followed_id:
      return WriteResult.skipped("self_notification", recipient_id=followed_id)

    actor, failure = await self._load_actor(actor_id, recipient_id=followed_id)
    if actor is None:
      return failure

    message = follow_message(actor_name=actor.full_name, actor_username=actor.username)
    return await self._write(recipient_id=followed_id, notification_type=NotificationType.FOLLOW, data=_actor_data(actor), message=message)

  async def notify_mentions(self, *, actor_id: uuid.UUID, text: str, post_id: uuid.UUID | None = None, comment_id: uuid.UUID | None = None) -> list[WriteResult]:
    """Record a mention and notify each distinct member mentioned in `text`."""
    usernames = extract_mentions(text)
    if not usernames:
      return []

    actor, failure = await self._load_actor(actor_id, recipient_id=None)
    if actor is None:
      return [failure]

    try:
      profiles = await self._profile_repo.get_by_usernames(usernames=usernames)
    except Exception as exc:  # noqa: BLE001
      logger.error("Mention lookup failed actor_id=%s error=%s", actor_id, exc, exc_info=True)
      return [WriteResult.failed("mention_lookup_failed")]

    results: list[WriteResult] = []
    for username in usernames:
      target = profiles.get(username)
      if target is None:
        results.append(WriteResult.skipped("unknown_username"))
        continue

      if target.id == actor_id:
        results.append(WriteResult.skipped("self_notification", recipient_id=target.id))
        continue

      try:
        await self._mention_repo.insert(mentioned_user_id=target.id, mentioned_by=actor_id, post_id=post_id, comment_id=comment_id)
      except Exception as exc:  # noqa: BLE001
        logger.error("Mention insert failed mentioned_user_id=%s error=%s", target.id, exc, exc_info=True)
        results.append(WriteResult.failed("mention_insert_failed", recipient_id=target.id))
        continue

      data = {**_actor_data(actor), "post_id": str(post_id) if post_id else None}
      if comment_id is not None:
        data["comment_id"] = str(comment_id)
      message = mention_message(actor_name=actor.full_name, post_id=str(post_id) if post_id else None)
      results.append(await self._write(recipient_id=target.id, notification_type=NotificationType.MENTION, data=data, message=message))

    return results

  async def _load_actor(self, actor_id: uuid.UUID, *, recipient_id: uuid.UUID | None) -> tuple[ProfileSummary | None, WriteResult]:
    try:
      actor = await self._profile_repo.get_by_id(user_id=actor_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Actor profile lookup failed actor_id=%s error=%s", actor_id, exc, exc_info=True)
      return None, WriteResult.failed("actor_lookup_failed", recipient_id=recipient_id)

    if actor is None:
      return None, WriteResult.skipped("actor_not_found", recipient_id=recipient_id)

    return actor, WriteResult(status="pending")

  async def _write(self, *, recipient_id: uuid.UUID, notification_type: NotificationType, data: dict[str, Any], message: PushMessage) -> WriteResult:
    try:
      record = await self._in_app_repo.insert(user_id=recipient_id, notification_type=notification_type.value, data=data)
    except Exception as exc:  # noqa: BLE001
      logger.error("Notification insert failed type=%s recipient_id=%s error=%s", notification_type.value, recipient_id, exc, exc_info=True)
      return WriteResult.failed("notification_insert_failed", recipient_id=recipient_id)

    push_scheduled = self._schedule_push(user_id=recipient_id, message=message)
    return WriteResult(status="created", notification_id=record.id, recipient_id=recipient_id, push_scheduled=push_scheduled)

  def _schedule_push(self, *, user_id: uuid.UUID, message: PushMessage) -> bool:
    # Push runs in the background so the acting user never waits on delivery.
    if not self._push_enabled:
      return False

    task = asyncio.create_task(self._dispatch_push(user_id=user_id, message=message))
    self._background_tasks.add(task)
    task.add_done_callback(self._background_tasks.discard)
    task.add_done_callback(self._log_task_error)
    return True

  async def _dispatch_push(self, *, user_id: uuid.UUID, message: PushMessage) -> None:
    assert self._push_dispatcher is not None
    try:
      await self._push_dispatcher.deliver(user_id, message)
    except Exception as exc:  # noqa: BLE001
      logger.error("Push dispatch failed user_id=%s tag=%s error=%s", user_id, message.tag, exc)

  async def drain(self) -> None:
    """Wait for in-flight push deliveries, used on shutdown."""
    if self._background_tasks:
      await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

  @staticmethod
  def _log_task_error(task: asyncio.Task[None]) -> None:
    """Log background task exceptions to avoid silent delivery failures."""
    if task.cancelled():
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Background push dispatch task failed: %s", exc, exc_info=exc)
