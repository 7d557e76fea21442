from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from agara.api.deps import get_notification_repo
from agara.core.security import USER_ID_HEADER, get_current_user_id, parse_user_id
from agara.notifications.contracts import NotificationRecord
from agara.notifications.in_app_repo import InAppNotificationRepository, record_to_json
from agara.realtime.feed import FeedEvent, NotificationFeed
from agara.realtime.toasts import notification_text, time_ago

logger = logging.getLogger(__name__)

router = APIRouter()


def _list_item(record: NotificationRecord) -> dict[str, Any]:
  item = record_to_json(record)
  item["text"] = notification_text(record)
  item["time_ago"] = time_ago(record.created_at) if record.created_at is not None else None
  return item


@router.get("")
async def list_notifications(
  user_id: uuid.UUID = Depends(get_current_user_id),  # noqa: B008
  repo: InAppNotificationRepository = Depends(get_notification_repo),  # noqa: B008
  limit: int = Query(20, ge=1, le=50),  # noqa: B008
  offset: int = Query(0, ge=0),  # noqa: B008
) -> dict[str, Any]:
  """
  Newest notifications of the caller, plus the unread count.

  - **limit**: Max number of notifications to return (at most 50).
  - **offset**: Number of notifications to skip.
  """
  records = await repo.list_recent(user_id=user_id, limit=limit, offset=offset)
  unread = await repo.unread_count(user_id=user_id)
  return {"notifications": [_list_item(record) for record in records], "unread_count": unread}


@router.post("/{notification_id}/read")
async def mark_notification_read(notification_id: uuid.UUID, user_id: uuid.UUID = Depends(get_current_user_id), repo: InAppNotificationRepository = Depends(get_notification_repo)) -> dict[str, bool]:  # noqa: B008
  updated = await repo.mark_read(user_id=user_id, notification_id=notification_id)
  if not updated:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
  return {"read": True}


@router.post("/read-all")
async def mark_all_notifications_read(user_id: uuid.UUID = Depends(get_current_user_id), repo: InAppNotificationRepository = Depends(get_notification_repo)) -> dict[str, int]:  # noqa: B008
  updated = await repo.mark_all_read(user_id=user_id)
  return {"updated": updated}


def _snapshot(feed: NotificationFeed) -> dict[str, Any]:
  return {"type": "snapshot", "notifications": [record_to_json(record) for record in feed.notifications], "unread_count": feed.unread_count}


def _event_message(event: FeedEvent) -> dict[str, Any]:
  return {"type": "notification", "notification": record_to_json(event.notification), "toast": event.toast.to_dict(), "unread_count": event.unread_count}


async def _apply_command(feed: NotificationFeed, command: dict[str, Any]) -> dict[str, Any]:
  action = command.get("action")
  if action == "mark_read":
    try:
      notification_id = uuid.UUID(str(command.get("id")))
    except ValueError:
      return {"type": "error", "detail": "id must be a notification id"}
    ok = await feed.mark_as_read(notification_id)
    return {"type": "read", "id": str(notification_id), "ok": ok, "unread_count": feed.unread_count}
  if action == "mark_all_read":
    ok = await feed.mark_all_as_read()
    return {"type": "read_all", "ok": ok, "unread_count": feed.unread_count}
  if action == "refresh":
    await feed.refresh()
    return _snapshot(feed)
  return {"type": "error", "detail": f"unknown action {action!r}"}


@router.websocket("/stream")
async def notification_stream(websocket: WebSocket) -> None:
  """Push a snapshot, then every new notification with its toast; accept read-state commands."""
  user_id = parse_user_id(websocket.headers.get(USER_ID_HEADER))
  if user_id is None:
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return

  services = websocket.app.state.services
  settings = services.settings
  feed = NotificationFeed(user_id=user_id, repo=services.in_app_repo, hub=services.hub, initial_limit=settings.feed_initial_limit, toast_duration_ms=settings.toast_duration_ms)

  await websocket.accept()
  async with feed:
    await websocket.send_json(_snapshot(feed))

    async def forward_events() -> None:
      while (event := await feed.next_event()) is not None:
        await websocket.send_json(_event_message(event))

    forwarder = asyncio.create_task(forward_events())
    try:
      while True:
        try:
          command = json.loads(await websocket.receive_text())
        except ValueError:
          command = None
        if not isinstance(command, dict):
          await websocket.send_json({"type": "error", "detail": "commands must be objects"})
          continue
        await websocket.send_json(await _apply_command(feed, command))
    except WebSocketDisconnect:
      logger.debug("Notification stream disconnected user_id=%s", user_id)
    finally:
      forwarder.cancel()
      await asyncio.gather(forwarder, return_exceptions=True)
