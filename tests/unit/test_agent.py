from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agara.push.agent import DEFAULT_BADGE, DEFAULT_ICON, BackgroundAgent, ShownNotification, parse_push_data


def test_parse_push_data_defaults_when_empty():
  notification = parse_push_data(None, now_ms=1000)

  assert notification.title == "Agara Köyü"
  assert notification.body == "Yeni bir bildiriminiz var!"
  assert notification.url == "/bildirimler"
  assert notification.tag == "agara-notification"
  options = notification.options()
  assert options["icon"] == DEFAULT_ICON
  assert options["badge"] == DEFAULT_BADGE
  assert options["vibrate"] == [100, 50, 100]
  assert options["renotify"] is True
  assert options["data"] == {"url": "/bildirimler", "dateOfArrival": 1000}
  assert options["actions"] == [{"action": "open", "title": "Aç"}, {"action": "close", "title": "Kapat"}]


def test_parse_push_data_overlays_json_fields():
  raw = json.dumps({"title": "Yeni Beğeni", "body": "Ayşe gönderinizi beğendi", "url": "/gonderi/42", "tag": "like-42"}).encode()

  notification = parse_push_data(raw)

  assert (notification.title, notification.body, notification.url, notification.tag) == ("Yeni Beğeni", "Ayşe gönderinizi beğendi", "/gonderi/42", "like-42")
  assert notification.icon == DEFAULT_ICON


def test_parse_push_data_uses_plain_text_as_body():
  notification = parse_push_data("Merhaba köy!".encode("utf-8"))

  assert notification.title == "Agara Köyü"
  assert notification.body == "Merhaba köy!"


def _runtime(windows=None) -> MagicMock:
  runtime = MagicMock()
  runtime.origin = "https://agarakoyu.com"
  runtime.skip_waiting = AsyncMock()
  runtime.claim_clients = AsyncMock()
  runtime.show_notification = AsyncMock()
  runtime.match_windows = AsyncMock(return_value=windows or [])
  runtime.open_window = AsyncMock()
  return runtime


def _window(url: str) -> MagicMock:
  window = MagicMock()
  window.url = url
  window.focus = AsyncMock()
  window.navigate = AsyncMock()
  return window


@pytest.mark.anyio
async def test_install_and_activate_take_control_immediately():
  runtime = _runtime()
  agent = BackgroundAgent(runtime)

  await agent.on_install()
  await agent.on_activate()

  runtime.skip_waiting.assert_awaited_once()
  runtime.claim_clients.assert_awaited_once()


@pytest.mark.anyio
async def test_on_push_shows_notification():
  runtime = _runtime()

  await BackgroundAgent(runtime).on_push(json.dumps({"title": "Yeni Yorum", "body": "Mehmet: harika"}))

  title, options = runtime.show_notification.await_args.args
  assert title == "Yeni Yorum"
  assert options["body"] == "Mehmet: harika"


@pytest.mark.anyio
async def test_close_action_only_closes():
  runtime = _runtime()
  notification = ShownNotification(data={"url": "/gonderi/1"})

  assert await BackgroundAgent(runtime).on_notification_click(notification, "close") == "closed"
  assert notification.closed
  runtime.match_windows.assert_not_awaited()
  runtime.open_window.assert_not_awaited()


@pytest.mark.anyio
async def test_click_focuses_open_window_and_navigates():
  window = _window("https://agarakoyu.com/feed")
  runtime = _runtime([_window("https://other.example/page"), window])

  outcome = await BackgroundAgent(runtime).on_notification_click(ShownNotification(data={"url": "/gonderi/1"}))

  assert outcome == "focused"
  window.focus.assert_awaited_once()
  window.navigate.assert_awaited_once_with("/gonderi/1")
  runtime.open_window.assert_not_awaited()


@pytest.mark.anyio
async def test_click_opens_new_window_with_default_url():
  runtime = _runtime()

  assert await BackgroundAgent(runtime).on_notification_click(ShownNotification(), "open") == "opened"
  runtime.open_window.assert_awaited_once_with("/bildirimler")
