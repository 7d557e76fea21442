"""Routes for Web Push subscriptions and server-side fan-out."""

from __future__ import annotations

import json
import logging
import re
import urllib.parse
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from agara.api.deps import get_delivery_service, get_services, get_subscription_repo
from agara.core.security import get_current_user_id
from agara.notifications.contracts import PushMessage, SubscriptionLookupError
from agara.notifications.delivery import FanOutDeliveryService
from agara.notifications.factory import NotificationServices
from agara.notifications.push_subscription_repo import PushSubscriptionEntry, PushSubscriptionRepository

logger = logging.getLogger(__name__)

_ALLOWED_PUSH_HOSTS = {"fcm.googleapis.com", "updates.push.services.mozilla.com", "push.services.mozilla.com", "web.push.apple.com"}
_ALLOWED_PUSH_HOST_SUFFIXES = (".notify.windows.com", ".push.apple.com")
_BASE64_RE = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")

router = APIRouter()


def _validate_push_endpoint(value: str) -> str:
  """Restrict endpoints to known push network hosts over HTTPS."""
  normalized = value.strip()
  parsed = urllib.parse.urlparse(normalized)

  if parsed.scheme.lower() != "https":
    raise PydanticCustomError("push_endpoint_https", "endpoint must use https.")

  host = (parsed.hostname or "").lower()
  if host not in _ALLOWED_PUSH_HOSTS and not host.endswith(_ALLOWED_PUSH_HOST_SUFFIXES):
    raise PydanticCustomError("push_endpoint_host", "endpoint host is not allowed.")

  return normalized


class PushSubscriptionKeys(BaseModel):
  """Browser-provided key material for Web Push encryption."""

  p256dh: str = Field(min_length=40, max_length=512)
  auth: str = Field(min_length=16, max_length=256)
  model_config = ConfigDict(extra="forbid")

  @field_validator("p256dh", "auth")
  @classmethod
  def validate_base64url(cls, value: str) -> str:
    normalized = value.strip()
    if not _BASE64_RE.fullmatch(normalized):
      raise PydanticCustomError("push_key_format", "push keys must be base64url encoded.")

    return normalized


class PushSubscribeRequest(BaseModel):
  """Standard browser push subscription object payload."""

  endpoint: str = Field(min_length=1, max_length=2048)
  expiration_time: int | None = Field(default=None, alias="expirationTime")
  keys: PushSubscriptionKeys
  platform: str = Field(default="web", min_length=1, max_length=32)
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_push_endpoint(value)


class PushUnsubscribeRequest(BaseModel):
  """Payload for deleting an existing push subscription."""

  endpoint: str = Field(min_length=1, max_length=2048)
  model_config = ConfigDict(extra="forbid")

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_push_endpoint(value)


class PushPayload(BaseModel):
  """What the background agent shows; unknown keys are ignored."""

  title: str = Field(min_length=1)
  body: str = Field(min_length=1)
  icon: str | None = None
  url: str | None = None
  tag: str | None = None


class PushSendRequest(BaseModel):
  user_id: uuid.UUID = Field(alias="userId")
  payload: PushPayload


def _error(status_code: int, message: str) -> JSONResponse:
  return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/vapid-public-key")
async def get_vapid_public_key(services: NotificationServices = Depends(get_services)) -> dict[str, str]:  # noqa: B008
  """Expose the application server key browsers need to subscribe."""
  public_key = services.settings.push_vapid_public_key
  if not services.settings.push_notifications_enabled or not public_key:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Push notifications are not configured")
  return {"publicKey": public_key}


@router.post("/send")
async def send_push(request: Request, delivery: FanOutDeliveryService = Depends(get_delivery_service)) -> JSONResponse:  # noqa: B008
  """Fan a payload out to every device of one user.

  Responds with `{error}` for malformed requests and lookup failures and with
  `{message, successful, failed}` after a fan-out. A user without devices gets
  200 with a message, never an error.
  """
  try:
    body = await request.json()
  except (json.JSONDecodeError, UnicodeDecodeError):
    return _error(status.HTTP_400_BAD_REQUEST, "userId and payload are required")

  if not isinstance(body, dict) or not body.get("userId") or not body.get("payload"):
    return _error(status.HTTP_400_BAD_REQUEST, "userId and payload are required")

  try:
    send_request = PushSendRequest.model_validate(body)
  except ValidationError as exc:
    logger.warning("Push send rejected errors=%s", [error.get("loc") for error in exc.errors()])
    return _error(status.HTTP_400_BAD_REQUEST, "userId must be a valid id and payload needs title and body")

  payload = send_request.payload
  message = PushMessage(title=payload.title, body=payload.body, icon=payload.icon, url=payload.url, tag=payload.tag)
  try:
    result = await delivery.deliver(send_request.user_id, message)
  except SubscriptionLookupError:
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch subscriptions")

  if result.attempted == 0:
    return JSONResponse(status_code=status.HTTP_200_OK, content={"message": "No subscriptions found for user"})

  return JSONResponse(status_code=status.HTTP_200_OK, content={"message": f"Sent {result.successful} notifications, {result.failed} failed", "successful": result.successful, "failed": result.failed})


@router.post("/subscribe", status_code=status.HTTP_204_NO_CONTENT)
async def subscribe_to_push(payload: PushSubscribeRequest, user_id: uuid.UUID = Depends(get_current_user_id), repo: PushSubscriptionRepository = Depends(get_subscription_repo)) -> Response:  # noqa: B008
  """Upsert the caller's browser push subscription."""
  try:
    await repo.upsert(PushSubscriptionEntry(user_id=user_id, endpoint=payload.endpoint, p256dh=payload.keys.p256dh, auth=payload.keys.auth, platform=payload.platform))
  except Exception as exc:  # noqa: BLE001
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save push subscription") from exc

  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/unsubscribe", status_code=status.HTTP_204_NO_CONTENT)
async def unsubscribe_from_push(payload: PushUnsubscribeRequest, user_id: uuid.UUID = Depends(get_current_user_id), repo: PushSubscriptionRepository = Depends(get_subscription_repo)) -> Response:  # noqa: B008
  """Delete a subscription owned by the caller; deleting a missing one succeeds."""
  try:
    await repo.delete_for_user_endpoint(user_id=user_id, endpoint=payload.endpoint)
  except Exception as exc:  # noqa: BLE001
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete push subscription") from exc

  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/subscriptions/status")
async def subscription_status(endpoint: str = Query(min_length=1, max_length=2048), user_id: uuid.UUID = Depends(get_current_user_id), repo: PushSubscriptionRepository = Depends(get_subscription_repo)) -> dict[str, bool]:  # noqa: B008
  """Report whether the store holds the caller's subscription for this endpoint."""
  try:
    registered = await repo.exists(user_id=user_id, endpoint=endpoint.strip())
  except Exception as exc:  # noqa: BLE001
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to check push subscription") from exc

  return {"registered": registered}
