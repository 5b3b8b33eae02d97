from __future__ import annotations

import asyncio
import os
import secrets

import structlog
from sqlalchemy import select

from taskboard.db import SessionLocal
from taskboard.log import configure_logging
from taskboard.models import Board, BoardMember, Task, TaskList, User, utcnow
from taskboard.routers.boards import DEFAULT_LISTS
from taskboard.security import hash_password

logger = structlog.get_logger()

DEMO_BOARD_TITLE = "Taskboard Demo"


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def _ensure_user(db, *, email: str, name: str, env_key: str) -> User:
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if u:
    return u
  password, generated = _bootstrap_password(env_key)
  u = User(email=email, name=name, password_hash=hash_password(password))
  db.add(u)
  await db.flush()
  logger.info("seed_user_created", email=email, password=password if generated else "<from env>")
  return u


async def seed(*, demo_board: bool | None = None) -> None:
  if demo_board is None:
    demo_board = os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y")

  async with SessionLocal() as db:
    admin = await _ensure_user(db, email="admin@taskboard.local", name="Admin", env_key="SEED_ADMIN_PASSWORD")
    member = await _ensure_user(db, email="member@taskboard.local", name="Member", env_key="SEED_MEMBER_PASSWORD")

    if demo_board:
      bres = await db.execute(select(Board).where(Board.title == DEMO_BOARD_TITLE, Board.owner_id == admin.id))
      board = bres.scalar_one_or_none()
      if not board:
        board = Board(title=DEMO_BOARD_TITLE, owner_id=admin.id)
        db.add(board)
        await db.flush()
        db.add(BoardMember(board_id=board.id, user_id=admin.id, role="admin"))
        db.add(BoardMember(board_id=board.id, user_id=member.id, role="member"))
        lists = [TaskList(board_id=board.id, title=title, position=idx) for idx, title in enumerate(DEFAULT_LISTS)]
        db.add_all(lists)
        await db.flush()

        samples = [
          (lists[0], "Welcome to Taskboard", "Drag cards between lists to reorder them."),
          (lists[0], "Invite a teammate", "Add members from the board settings."),
          (lists[1], "Try moving tasks", "Positions stay dense: 0, 1, 2, ..."),
          (lists[2], "Done example", "A completed task in the Done list."),
        ]
        counts: dict[str, int] = {}
        for l, title, desc in samples:
          pos = counts.get(l.id, 0)
          counts[l.id] = pos + 1
          db.add(
            Task(
              board_id=board.id,
              list_id=l.id,
              title=title,
              description=desc,
              assignee_id=member.id,
              completed=l is lists[2],
              completed_at=utcnow() if l is lists[2] else None,
              position=pos,
              created_by=admin.id,
            )
          )
        logger.info("seed_demo_board_created", board_id=board.id)

    await db.commit()


def main() -> None:
  configure_logging()
  asyncio.run(seed())


if __name__ == "__main__":
  main()
