from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from agara.api.routes import activity, notifications, profiles, push
from agara.config import get_settings
from agara.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler, subscription_lookup_exception_handler
from agara.core.lifespan import lifespan
from agara.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from agara.notifications.contracts import SubscriptionLookupError

settings = get_settings()

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "x-user-id", "x-request-id"], expose_headers=["content-length", "x-request-id"])

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(SubscriptionLookupError, subscription_lookup_exception_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(push.router, prefix="/api/push", tags=["push"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])
app.include_router(activity.router, prefix="/api/activity", tags=["activity"])
app.include_router(profiles.router, prefix="/api/profiles", tags=["profiles"])
