from __future__ import annotations

from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from taskboard.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "tb_session"


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def new_session_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(days=max(1, int(settings.session_ttl_days)))


def as_utc(dt: datetime) -> datetime:
  # SQLite hands back naive datetimes even for timezone-aware columns.
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt
