"""Push message templates for each notification type."""

from __future__ import annotations

from agara.notifications.contracts import PushMessage

COMMENT_PREVIEW_CHARS = 50


def preview(text: str, *, limit: int = COMMENT_PREVIEW_CHARS, ellipsis: bool = False) -> str:
  """Cut text to `limit` characters, optionally marking the cut."""
  if len(text) <= limit:
    return text
  return text[:limit] + ("..." if ellipsis else "")


def like_message(*, actor_name: str, post_id: str) -> PushMessage:
  return PushMessage(title="Yeni Beğeni", body=f"{actor_name} gönderinizi beğendi", url=f"/gonderi/{post_id}", tag=f"like-{post_id}")


def comment_message(*, actor_name: str, post_id: str, comment_text: str) -> PushMessage:
  return PushMessage(title="Yeni Yorum", body=f"{actor_name}: {preview(comment_text, ellipsis=True)}", url=f"/gonderi/{post_id}", tag=f"comment-{post_id}")


def follow_message(*, actor_name: str, actor_username: str) -> PushMessage:
  return PushMessage(title="Yeni Takipçi", body=f"{actor_name} sizi takip etmeye başladı", url=f"/profil/{actor_username}", tag=f"follow-{actor_username}")


def mention_message(*, actor_name: str, post_id: str | None) -> PushMessage:
  # Comment mentions without a known post fall back to the notification list.
  url = f"/gonderi/{post_id}" if post_id else "/bildirimler"
  return PushMessage(title="Sizden Bahsedildi", body=f"{actor_name} bir gönderide sizden bahsetti", url=url, tag=f"mention-{post_id}" if post_id else "mention")
