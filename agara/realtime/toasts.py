"""Turn notification rows into transient toasts and list-row text."""

from __future__ import annotations

import datetime
from dataclasses import asdict, dataclass
from typing import Any

from agara.notifications.contracts import NotificationRecord, NotificationType
from agara.utils.ids import generate_nanoid

DEFAULT_TOAST_DURATION_MS = 6000
NOTIFICATION_LIST_URL = "/bildirimler"
ANONYMOUS_ACTOR = "Birisi"


@dataclass(frozen=True)
class Toast:
  """One transient alert; never persisted, dismissed by the client after `duration_ms`."""

  id: str
  type: str
  title: str
  message: str
  url: str | None
  duration_ms: int

  def to_dict(self) -> dict[str, Any]:
    return asdict(self)


def _post_url(data: dict[str, Any]) -> str:
  post_id = data.get("post_id")
  return f"/gonderi/{post_id}" if post_id else NOTIFICATION_LIST_URL


def _profile_url(data: dict[str, Any]) -> str:
  username = data.get("user_username")
  return f"/profil/{username}" if username else NOTIFICATION_LIST_URL


def toast_content(record: NotificationRecord) -> tuple[str, str, str]:
  """Map a notification to (title, message, deep link); unknown types get a generic message."""
  data = record.data if isinstance(record.data, dict) else {}
  name = data.get("user_name") or ANONYMOUS_ACTOR

  if record.type == NotificationType.LIKE.value:
    return "Yeni Beğeni", f"{name} gönderinizi beğendi", _post_url(data)
  if record.type == NotificationType.COMMENT.value:
    return "Yeni Yorum", f"{name} gönderinize yorum yaptı", _post_url(data)
  if record.type == NotificationType.FOLLOW.value:
    return "Yeni Takipçi", f"{name} sizi takip etmeye başladı", _profile_url(data)
  if record.type == NotificationType.MENTION.value:
    return "Sizden Bahsedildi", f"{name} sizden bahsetti", _post_url(data)
  return "Yeni Bildirim", "Yeni bir bildiriminiz var", NOTIFICATION_LIST_URL


def build_toast(record: NotificationRecord, *, duration_ms: int = DEFAULT_TOAST_DURATION_MS) -> Toast:
  title, message, url = toast_content(record)
  return Toast(id=generate_nanoid(), type="notification", title=title, message=message, url=url, duration_ms=duration_ms)


_LIST_TEXT = {
  NotificationType.LIKE.value: "{name} gönderini beğendi",
  NotificationType.COMMENT.value: "{name} gönderine yorum yaptı",
  NotificationType.FOLLOW.value: "{name} seni takip etmeye başladı",
  NotificationType.MENTION.value: "{name} senden bahsetti",
}


def notification_text(record: NotificationRecord) -> str:
  """Sentence shown for a row on the notification list page."""
  template = _LIST_TEXT.get(record.type)
  if template is None:
    return "Yeni bildirim"
  data = record.data if isinstance(record.data, dict) else {}
  return template.format(name=data.get("user_name") or ANONYMOUS_ACTOR)


def time_ago(created_at: datetime.datetime, *, now: datetime.datetime | None = None) -> str:
  """Relative Turkish timestamp; anything older than a week shows the date."""
  current = now or datetime.datetime.now(datetime.UTC)
  if created_at.tzinfo is None:
    created_at = created_at.replace(tzinfo=datetime.UTC)

  seconds = int((current - created_at).total_seconds())
  if seconds < 60:
    return "Az önce"
  minutes = seconds // 60
  if minutes < 60:
    return f"{minutes} dk önce"
  hours = minutes // 60
  if hours < 24:
    return f"{hours} saat önce"
  days = hours // 24
  if days < 7:
    return f"{days} gün önce"
  return created_at.strftime("%d.%m.%Y")
