from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.deps import get_current_user, get_db, require_board_role
from taskboard.models import AuditEvent, BoardMember, Task, User
from taskboard.schemas import AuditOut

router = APIRouter(prefix="/audit", tags=["audit"])


def _audit_out(ev: AuditEvent) -> AuditOut:
  return AuditOut(
    id=ev.id,
    boardId=ev.board_id,
    taskId=ev.task_id,
    actorId=ev.actor_id,
    eventType=ev.event_type,
    entityType=ev.entity_type,
    entityId=ev.entity_id,
    payload=ev.payload or {},
    createdAt=ev.created_at,
  )


@router.get("", response_model=list[AuditOut])
async def list_audit(
  boardId: str | None = None,
  taskId: str | None = None,
  limit: int = Query(default=50, ge=1, le=200),
  offset: int = Query(default=0, ge=0),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  """Activity feed, newest first. Without filters it covers every board the caller belongs to."""
  q = select(AuditEvent)
  if taskId:
    tres = await db.execute(select(Task.board_id).where(Task.id == taskId))
    task_board_id = tres.scalar_one_or_none()
    if task_board_id is None:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    await require_board_role(task_board_id, "viewer", user.id, db)
    q = q.where(AuditEvent.task_id == taskId)
  if boardId:
    await require_board_role(boardId, "viewer", user.id, db)
    q = q.where(AuditEvent.board_id == boardId)
  if not boardId and not taskId:
    my_boards = select(BoardMember.board_id).where(BoardMember.user_id == user.id)
    q = q.where(AuditEvent.board_id.in_(my_boards))

  res = await db.execute(q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.asc()).offset(offset).limit(limit))
  return [_audit_out(ev) for ev in res.scalars().all()]
