from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from agara.config import get_database_settings


class Base(DeclarativeBase):
  pass


engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


def async_database_url(dsn: str | None) -> str | None:
  """Rewrite a plain Postgres DSN so SQLAlchemy uses the asyncpg driver."""
  if not dsn:
    return None
  for prefix in ("postgres://", "postgresql://"):
    if dsn.startswith(prefix):
      return dsn.replace(prefix, "postgresql+asyncpg://", 1)
  return dsn


def plain_database_url(dsn: str | None) -> str | None:
  """Strip the SQLAlchemy driver suffix so asyncpg can connect directly."""
  if not dsn:
    return None
  return dsn.replace("postgresql+asyncpg://", "postgresql://", 1)


def get_db_engine() -> AsyncEngine | None:
  global engine
  settings = get_database_settings()
  database_url = async_database_url(settings.pg_dsn)
  if engine is None and database_url:
    engine = create_async_engine(database_url, echo=settings.debug, connect_args={"timeout": settings.pg_connect_timeout})
  return engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global SessionLocal
  if SessionLocal is None:
    db_engine = get_db_engine()
    if db_engine:
      SessionLocal = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
  return SessionLocal


async def dispose_engine() -> None:
  """Close pooled connections on shutdown."""
  global engine, SessionLocal
  if engine is not None:
    await engine.dispose()
  engine = None
  SessionLocal = None


async def get_db() -> AsyncGenerator[AsyncSession]:
  """Dependency to get a database session."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (AGARA_PG_DSN is missing).")

  async with session_factory() as session:
    yield session
