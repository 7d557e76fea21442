from __future__ import annotations

import datetime
import uuid
from unittest.mock import AsyncMock

import pytest

from agara.notifications.contracts import NotificationRecord
from agara.realtime.change_feed import ChangeFeedHub
from agara.realtime.feed import FeedClosedError, FeedState, NotificationFeed


def _record(user_id: uuid.UUID, *, read: bool = False, notification_type: str = "like") -> NotificationRecord:
  return NotificationRecord(id=uuid.uuid4(), user_id=user_id, type=notification_type, data={"user_name": "Mehmet", "post_id": "p1"}, read=read, created_at=datetime.datetime.now(datetime.UTC))


@pytest.fixture
def user_id() -> uuid.UUID:
  return uuid.uuid4()


@pytest.fixture
def existing(user_id) -> list[NotificationRecord]:
  return [_record(user_id), _record(user_id, read=True), _record(user_id)]


@pytest.fixture
def repo(existing):
  repo = AsyncMock()
  repo.list_recent.return_value = list(existing)
  repo.mark_read.return_value = True
  repo.mark_all_read.return_value = 2
  return repo


@pytest.fixture
def hub() -> ChangeFeedHub:
  return ChangeFeedHub()


@pytest.mark.anyio
async def test_start_loads_latest_and_counts_unread(user_id, repo, hub):
  feed = NotificationFeed(user_id=user_id, repo=repo, hub=hub, initial_limit=20)

  await feed.start()

  assert feed.state is FeedState.LISTENING
  assert len(feed.notifications) == 3
  assert feed.unread_count == 2
  repo.list_recent.assert_awaited_once_with(user_id=user_id, limit=20)
  assert hub.subscriber_count(user_id) == 1


@pytest.mark.anyio
async def test_insert_is_prepended_counted_and_toasted(user_id, repo, hub):
  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub, toast_duration_ms=4000) as feed:
    incoming = _record(user_id, notification_type="comment")
    assert hub.publish(incoming) == 1

    event = await feed.next_event()

    assert feed.notifications[0] == incoming
    assert feed.unread_count == 3
    assert event.notification == incoming
    assert event.unread_count == 3
    assert event.toast.title == "Yeni Yorum"
    assert event.toast.message == "Mehmet gönderinize yorum yaptı"
    assert event.toast.duration_ms == 4000


@pytest.mark.anyio
async def test_other_recipients_rows_are_ignored(user_id, repo, hub):
  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    assert hub.publish(_record(uuid.uuid4())) == 0
    assert len(feed.notifications) == 3


@pytest.mark.anyio
async def test_duplicate_insert_is_dropped(user_id, repo, hub, existing):
  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    hub.publish(existing[0])
    assert len(feed.notifications) == 3
    assert feed._events.empty()


@pytest.mark.anyio
async def test_row_arriving_during_initial_fetch_is_kept(user_id, hub, existing):
  late = _record(user_id)
  repo = AsyncMock()

  async def _list_recent(**kwargs):
    hub.publish(late)
    return list(existing)

  repo.list_recent.side_effect = _list_recent

  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    assert feed.notifications[0] == late
    assert len(feed.notifications) == 4


@pytest.mark.anyio
async def test_refresh_after_insert_replaces_list_in_store_order(user_id, hub):
  old, mid, new = _record(user_id), _record(user_id), _record(user_id)
  repo = AsyncMock()
  repo.list_recent.return_value = [mid, old]

  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub, initial_limit=2) as feed:
    hub.publish(new)
    assert feed.notifications == [new, mid, old]

    repo.list_recent.return_value = [new, mid]
    await feed.refresh()

    assert feed.notifications == [new, mid]


@pytest.mark.anyio
async def test_refresh_drops_rows_removed_from_store(user_id, repo, hub, existing):
  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    repo.list_recent.return_value = existing[1:]
    await feed.refresh()

    assert feed.notifications == existing[1:]
    assert feed.unread_count == 1


@pytest.mark.anyio
async def test_mark_as_read_applies_locally(user_id, repo, hub, existing):
  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    assert await feed.mark_as_read(existing[0].id) is True

    assert feed.unread_count == 1
    assert feed.pending == []
    repo.mark_read.assert_awaited_once_with(user_id=user_id, notification_id=existing[0].id)


@pytest.mark.anyio
async def test_mark_as_read_reverts_when_store_fails(user_id, repo, hub, existing):
  repo.mark_read.side_effect = RuntimeError("update failed")

  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    assert await feed.mark_as_read(existing[0].id) is False

    assert feed.unread_count == 2
    assert feed.notifications[0].read is False
    assert feed.pending == []


@pytest.mark.anyio
async def test_mark_as_read_reverts_when_row_not_updated(user_id, repo, hub, existing):
  repo.mark_read.return_value = False

  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    assert await feed.mark_as_read(existing[2].id) is False
    assert feed.unread_count == 2


@pytest.mark.anyio
async def test_mark_all_as_read_and_revert(user_id, repo, hub):
  async with NotificationFeed(user_id=user_id, repo=repo, hub=hub) as feed:
    assert await feed.mark_all_as_read() is True
    assert feed.unread_count == 0

  repo.mark_all_read.side_effect = RuntimeError("update failed")
  async with NotificationFeed(user_id=user_id, repo=repo, hub=ChangeFeedHub()) as feed:
    assert await feed.mark_all_as_read() is False
    assert feed.unread_count == 2


@pytest.mark.anyio
async def test_close_unsubscribes_and_ends_event_stream(user_id, repo, hub):
  feed = NotificationFeed(user_id=user_id, repo=repo, hub=hub)
  await feed.start()
  await feed.close()

  assert feed.state is FeedState.TORN_DOWN
  assert hub.subscriber_count(user_id) == 0
  assert await feed.next_event() is None
  assert hub.publish(_record(user_id)) == 0

  with pytest.raises(FeedClosedError):
    await feed.start()
