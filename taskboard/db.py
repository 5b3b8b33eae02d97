from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskboard.config import settings


def _engine_kwargs() -> dict:
  if settings.is_sqlite():
    return {"connect_args": {"timeout": settings.sqlite_busy_timeout_seconds}}
  return {"pool_pre_ping": True}


engine = create_async_engine(settings.database_url, **_engine_kwargs())

SessionLocal = async_sessionmaker(
  engine,
  class_=AsyncSession,
  expire_on_commit=False,
  autoflush=False,
)
