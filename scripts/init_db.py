"""Local database bootstrap.

Creates the configured database when it is missing, then creates the
notification tables. Production schemas are owned by the hosted backend; this
script only serves local and test environments.
"""

import asyncio
import logging
import os
import re
import sys

from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import create_async_engine

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


_DB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def _validate_database_name(db_name: str) -> str:
  """Validate a database name used as an identifier, since CREATE DATABASE cannot take bind parameters."""
  if not db_name:
    raise ValueError("Target database name is empty.")

  if not _DB_NAME_PATTERN.fullmatch(db_name):
    raise ValueError("Target database name contains invalid characters (allowed: A-Z, a-z, 0-9, _).")

  return db_name


async def create_database_if_not_exists(dsn: str) -> None:
  url = make_url(dsn)
  target_db = _validate_database_name(url.database or "")
  postgres_url = url.set(database="postgres", drivername="postgresql+asyncpg")

  print(f"Connecting to postgres to check for database '{target_db}'...")
  # CREATE DATABASE cannot run inside a transaction.
  engine = create_async_engine(postgres_url, isolation_level="AUTOCOMMIT")
  try:
    async with engine.connect() as conn:
      result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": target_db})
      if result.scalar() == 1:
        print(f"Database '{target_db}' already exists.")
        return

      print(f"Database '{target_db}' does not exist. Creating...")
      await conn.execute(text(f'CREATE DATABASE "{target_db}"'))
      print(f"Database '{target_db}' created successfully.")
  finally:
    await engine.dispose()


async def create_tables() -> None:
  from agara.core.database import Base, dispose_engine, get_db_engine
  from agara.schema import sql  # noqa: F401

  engine = get_db_engine()
  if engine is None:
    raise RuntimeError("AGARA_PG_DSN is not set.")

  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")
  finally:
    await dispose_engine()


async def main() -> None:
  from agara.config import get_database_settings
  from agara.core.env_contract import validate_runtime_env_or_raise

  logging.basicConfig(level=logging.INFO)
  validate_runtime_env_or_raise(logger=logging.getLogger("scripts.init_db"), target="init")

  dsn = get_database_settings().pg_dsn
  if not dsn:
    print("Error: AGARA_PG_DSN is not set.")
    sys.exit(1)

  try:
    await create_database_if_not_exists(dsn)
    await create_tables()
  except Exception as e:
    print(f"Error initializing database: {e}")
    sys.exit(1)


if __name__ == "__main__":
  asyncio.run(main())
