from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./taskboard_test.db")

import pytest
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select, update

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

from taskboard.config import settings
from taskboard.db import SessionLocal, engine
from taskboard.main import app
from taskboard.models import (
  AuditEvent,
  Base,
  Board,
  BoardMember,
  Comment,
  Label,
  Notification,
  Session,
  Task,
  TaskLabel,
  TaskList,
  User,
)
from taskboard.notifications.events import drain_pending
from taskboard.security import hash_password

# structlog.testing.capture_logs only sees loggers that are not cached
structlog.configure(cache_logger_on_first_use=False)

PASSWORD = "admin1234"
ADMIN = "admin@taskboard.local"
MEMBER = "member@taskboard.local"
OUTSIDER = "outsider@taskboard.local"
SEEDED_USERS = {ADMIN: "Admin", MEMBER: "Member", OUTSIDER: "Outsider"}

_schema_ready = False


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _ensure_schema() -> None:
  global _schema_ready
  if _schema_ready:
    return
  async with engine.begin() as conn:
    # rebuilt once per session so a leftover test database picks up schema changes
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    res = await db.execute(select(User.email).where(User.email.in_(list(SEEDED_USERS))))
    existing = set(res.scalars().all())
    for email, name in SEEDED_USERS.items():
      if email not in existing:
        db.add(User(email=email, name=name, password_hash=hash_password(PASSWORD)))
    await db.commit()
  _schema_ready = True


async def _reset_db() -> None:
  await drain_pending()
  async with SessionLocal() as db:
    # Keep seeded users; wipe everything else for deterministic tests.
    await db.execute(delete(AuditEvent))
    await db.execute(delete(Notification))
    await db.execute(delete(Comment))
    await db.execute(delete(TaskLabel))
    await db.execute(delete(Label))
    await db.execute(delete(Task))
    await db.execute(delete(TaskList))
    await db.execute(delete(BoardMember))
    await db.execute(delete(Board))
    await db.execute(delete(Session))
    await db.execute(delete(User).where(User.email.notin_(list(SEEDED_USERS))))
    await db.execute(update(User).where(User.email.in_(list(SEEDED_USERS))).values(active=True))
    await db.commit()
  await engine.dispose()


@pytest.fixture
async def clean_db() -> None:
  if "test" not in settings.database_name():
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. taskboard_test)."
    )
  await _ensure_schema()
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client(clean_db: None) -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def login(client: AsyncClient, email: str, password: str = PASSWORD) -> dict[str, str]:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "tb_session=" in cookie
  return {"ok": "true"}


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one().id


async def create_board(client: AsyncClient, title: str = "Board") -> dict[str, Any]:
  res = await client.post("/boards", json={"title": title})
  assert res.status_code == 200, res.text
  return res.json()


async def board_detail(client: AsyncClient, board_id: str) -> dict[str, Any]:
  res = await client.get(f"/boards/{board_id}")
  assert res.status_code == 200, res.text
  return res.json()


async def add_member(client: AsyncClient, board_id: str, email: str, role: str = "member") -> None:
  res = await client.post(f"/boards/{board_id}/members", json={"email": email, "role": role})
  assert res.status_code == 200, res.text


async def create_tasks(client: AsyncClient, list_id: str, titles: list[str]) -> list[dict[str, Any]]:
  out = []
  for title in titles:
    res = await client.post(f"/lists/{list_id}/tasks", json={"title": title})
    assert res.status_code == 200, res.text
    out.append(res.json())
  return out


async def list_state(client: AsyncClient, list_id: str) -> list[tuple[str, int]]:
  res = await client.get(f"/lists/{list_id}/tasks")
  assert res.status_code == 200, res.text
  return [(t["title"], t["position"]) for t in res.json()]
