"""Background delivery agent: what happens on push, click, install and activate."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Agara Köyü"
DEFAULT_BODY = "Yeni bir bildiriminiz var!"
DEFAULT_URL = "/bildirimler"
DEFAULT_ICON = "/icons/android/android-launchericon-192-192.png"
DEFAULT_BADGE = "/icons/android/android-launchericon-72-72.png"
DEFAULT_TAG = "agara-notification"

OPEN_ACTION = "open"
CLOSE_ACTION = "close"


@dataclass(frozen=True)
class NotificationAction:
  action: str
  title: str


DEFAULT_ACTIONS = (NotificationAction(action=OPEN_ACTION, title="Aç"), NotificationAction(action=CLOSE_ACTION, title="Kapat"))


@dataclass(frozen=True)
class AgentNotification:
  """A system notification ready to be shown by the runtime."""

  title: str
  body: str
  icon: str
  badge: str
  url: str
  tag: str
  arrived_at_ms: int
  actions: tuple[NotificationAction, ...] = DEFAULT_ACTIONS
  vibrate: tuple[int, ...] = (100, 50, 100)
  renotify: bool = True

  def options(self) -> dict[str, Any]:
    return {
      "body": self.body,
      "icon": self.icon,
      "badge": self.badge,
      "vibrate": list(self.vibrate),
      "data": {"url": self.url, "dateOfArrival": self.arrived_at_ms},
      "actions": [{"action": action.action, "title": action.title} for action in self.actions],
      "tag": self.tag,
      "renotify": self.renotify,
    }


def parse_push_data(raw: bytes | str | None, *, now_ms: int | None = None) -> AgentNotification:
  """Overlay a JSON payload on the defaults; non-JSON text becomes the body."""
  fields: dict[str, Any] = {"title": DEFAULT_TITLE, "body": DEFAULT_BODY, "icon": DEFAULT_ICON, "badge": DEFAULT_BADGE, "url": DEFAULT_URL}

  if raw:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
      decoded = json.loads(text)
    except ValueError:
      fields["body"] = text
    else:
      if isinstance(decoded, dict):
        fields.update({key: value for key, value in decoded.items() if value is not None})
      else:
        fields["body"] = text

  arrived_at_ms = now_ms if now_ms is not None else int(time.time() * 1000)
  return AgentNotification(
    title=str(fields["title"]),
    body=str(fields["body"]),
    icon=str(fields.get("icon") or DEFAULT_ICON),
    badge=str(fields.get("badge") or DEFAULT_BADGE),
    url=str(fields.get("url") or DEFAULT_URL),
    tag=str(fields.get("tag") or DEFAULT_TAG),
    arrived_at_ms=arrived_at_ms,
  )


class WindowClient(Protocol):
  url: str

  async def focus(self) -> None: ...

  async def navigate(self, url: str) -> None: ...


class AgentRuntime(Protocol):
  """Host environment the agent runs in."""

  origin: str

  async def skip_waiting(self) -> None: ...

  async def claim_clients(self) -> None: ...

  async def show_notification(self, title: str, options: dict[str, Any]) -> None: ...

  async def match_windows(self) -> list[WindowClient]: ...

  async def open_window(self, url: str) -> Any: ...


@dataclass
class ShownNotification:
  """The notification handed back by the runtime on click."""

  data: dict[str, Any] = field(default_factory=dict)
  closed: bool = False

  def close(self) -> None:
    self.closed = True


class BackgroundAgent:
  """Event handlers of the background delivery agent."""

  def __init__(self, runtime: AgentRuntime) -> None:
    self._runtime = runtime

  async def on_install(self) -> None:
    logger.debug("Installing background agent")
    await self._runtime.skip_waiting()

  async def on_activate(self) -> None:
    logger.debug("Background agent activated")
    await self._runtime.claim_clients()

  async def on_push(self, raw: bytes | str | None) -> AgentNotification:
    notification = parse_push_data(raw)
    await self._runtime.show_notification(notification.title, notification.options())
    return notification

  async def on_notification_click(self, notification: ShownNotification, action: str = "") -> str:
    """Route a click; returns `closed`, `focused` or `opened`."""
    notification.close()
    if action == CLOSE_ACTION:
      return "closed"

    url = (notification.data or {}).get("url") or DEFAULT_URL
    for client in await self._runtime.match_windows():
      if self._runtime.origin in client.url:
        await client.focus()
        await client.navigate(url)
        return "focused"

    await self._runtime.open_window(url)
    return "opened"
