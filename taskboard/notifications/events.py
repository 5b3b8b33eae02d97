from __future__ import annotations

import asyncio

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.config import settings
from taskboard.db import SessionLocal
from taskboard.models import Board, Notification, Task, User

logger = structlog.get_logger()

_pending: set[asyncio.Task] = set()


async def notify(
  db: AsyncSession,
  *,
  user_id: str,
  type: str,
  content: str,
  entity_type: str | None = None,
  entity_id: str | None = None,
) -> Notification | None:
  ures = await db.execute(select(User.active).where(User.id == user_id))
  active = ures.scalar_one_or_none()
  if not active:
    return None
  n = Notification(user_id=user_id, type=type, content=content, entity_type=entity_type, entity_id=entity_id)
  db.add(n)
  return n


async def deliver_task_assigned(*, task_id: str, assignee_id: str) -> None:
  async with SessionLocal() as db:
    res = await db.execute(
      select(Task.title, Board.title).join(Board, Board.id == Task.board_id).where(Task.id == task_id)
    )
    row = res.one_or_none()
    if row is None:
      return
    task_title, board_title = row
    await notify(
      db,
      user_id=assignee_id,
      type="TASK_ASSIGNED",
      content=f'You have been assigned to task "{task_title}" in board "{board_title}"',
      entity_type="TASK",
      entity_id=task_id,
    )
    await db.commit()


async def _deliver_quietly(*, task_id: str, assignee_id: str) -> None:
  try:
    await deliver_task_assigned(task_id=task_id, assignee_id=assignee_id)
  except Exception:
    logger.exception("notification_delivery_failed", trigger="task.assigned", task_id=task_id, assignee_id=assignee_id)


def emit_task_assigned(*, task_id: str, assignee_id: str) -> None:
  """Fire-and-forget; must be called after the triggering transaction committed."""
  if not settings.notifications_enabled:
    return
  t = asyncio.create_task(_deliver_quietly(task_id=task_id, assignee_id=assignee_id))
  _pending.add(t)
  t.add_done_callback(_pending.discard)


async def drain_pending() -> None:
  while _pending:
    await asyncio.gather(*list(_pending), return_exceptions=True)
