from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.audit import write_audit
from taskboard.deps import get_current_user, get_db, require_board_role
from taskboard.models import Label, Task, TaskLabel, User
from taskboard.schemas import LabelCreateIn, LabelOut, TaskLabelIn

router = APIRouter(tags=["labels"])


def label_out(l: Label) -> LabelOut:
  return LabelOut(id=l.id, boardId=l.board_id, name=l.name, color=l.color)


async def labels_by_task(db: AsyncSession, task_ids: list[str]) -> dict[str, list[LabelOut]]:
  out: dict[str, list[LabelOut]] = {tid: [] for tid in task_ids}
  if not task_ids:
    return out
  res = await db.execute(
    select(TaskLabel.task_id, Label)
    .join(Label, Label.id == TaskLabel.label_id)
    .where(TaskLabel.task_id.in_(task_ids))
    .order_by(Label.name.asc())
  )
  for task_id, l in res.all():
    out[task_id].append(label_out(l))
  return out


async def attach_labels(db: AsyncSession, *, task: Task, label_ids: list[str]) -> None:
  wanted = list(dict.fromkeys(label_ids))
  if not wanted:
    return
  res = await db.execute(select(Label.id).where(Label.id.in_(wanted), Label.board_id == task.board_id))
  valid = set(res.scalars().all())
  if valid != set(wanted):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid labelIds (must belong to the board)")
  for label_id in wanted:
    db.add(TaskLabel(task_id=task.id, label_id=label_id))


async def _get_task_or_404(task_id: str, db: AsyncSession) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  return t


@router.get("/boards/{board_id}/labels", response_model=list[LabelOut])
async def list_labels(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[LabelOut]:
  await require_board_role(board_id, "viewer", user.id, db)
  res = await db.execute(select(Label).where(Label.board_id == board_id).order_by(Label.name.asc()))
  return [label_out(l) for l in res.scalars().all()]


@router.post("/boards/{board_id}/labels", response_model=LabelOut)
async def create_label(
  board_id: str,
  payload: LabelCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> LabelOut:
  await require_board_role(board_id, "member", user.id, db)
  name = payload.name.strip()
  exists = await db.execute(select(Label.id).where(Label.board_id == board_id, Label.name == name))
  if exists.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Label already exists")
  l = Label(board_id=board_id, name=name, color=payload.color)
  db.add(l)
  await db.flush()
  await write_audit(db, event_type="label.created", entity_type="Label", entity_id=l.id, board_id=board_id, actor_id=user.id, payload={"name": name})
  await db.commit()
  return label_out(l)


@router.post("/tasks/{task_id}/labels", response_model=list[LabelOut])
async def add_task_label(
  task_id: str,
  payload: TaskLabelIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[LabelOut]:
  t = await _get_task_or_404(task_id, db)
  await require_board_role(t.board_id, "member", user.id, db)
  existing = await db.execute(select(TaskLabel.id).where(TaskLabel.task_id == task_id, TaskLabel.label_id == payload.labelId))
  if not existing.scalar_one_or_none():
    await attach_labels(db, task=t, label_ids=[payload.labelId])
    await write_audit(
      db,
      event_type="task.label_added",
      entity_type="Task",
      entity_id=t.id,
      board_id=t.board_id,
      task_id=t.id,
      actor_id=user.id,
      payload={"labelId": payload.labelId},
    )
    await db.commit()
  return (await labels_by_task(db, [task_id]))[task_id]


@router.delete("/tasks/{task_id}/labels/{label_id}", response_model=list[LabelOut])
async def remove_task_label(
  task_id: str,
  label_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[LabelOut]:
  t = await _get_task_or_404(task_id, db)
  await require_board_role(t.board_id, "member", user.id, db)
  await db.execute(delete(TaskLabel).where(TaskLabel.task_id == task_id, TaskLabel.label_id == label_id))
  await db.commit()
  return (await labels_by_task(db, [task_id]))[task_id]


@router.delete("/labels/{label_id}")
async def delete_label(label_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(select(Label).where(Label.id == label_id))
  l = res.scalar_one_or_none()
  if not l:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Label not found")
  await require_board_role(l.board_id, "member", user.id, db)

  await db.execute(delete(TaskLabel).where(TaskLabel.label_id == label_id))
  await db.delete(l)
  await write_audit(db, event_type="label.deleted", entity_type="Label", entity_id=label_id, board_id=l.board_id, actor_id=user.id, payload={"name": l.name})
  await db.commit()
  return {"ok": True}
