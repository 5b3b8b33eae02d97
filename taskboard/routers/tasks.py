from __future__ import annotations

from typing import Any, Callable

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.audit import write_audit
from taskboard.deps import get_current_user, get_db, require_board_role
from taskboard.models import BoardMember, Comment, Task, TaskLabel, TaskList, User, utcnow
from taskboard.notifications.events import emit_task_assigned
from taskboard.reordering import TASKS_IN_LIST, delete_item, insert_item, list_container_items, move_item, run_in_transaction
from taskboard.routers.labels import attach_labels, labels_by_task
from taskboard.schemas import DeleteOut, LabelOut, TaskCreateIn, TaskOut, TaskUpdateIn

router = APIRouter(tags=["tasks"])

# request field -> (model attribute, conversion applied before the write)
_UPDATABLE_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
  "title": ("title", lambda v: v.strip()),
  "description": ("description", lambda v: v or ""),
  "priority": ("priority", str),
  "dueDate": ("due_date", lambda v: v),
  "assigneeId": ("assignee_id", lambda v: v),
  "completed": ("completed", bool),
}
_NOT_NULLABLE = {"title", "priority", "completed"}
_MOVE_FIELDS = {"listId", "position"}


def task_out(t: Task, labels: list[LabelOut] | None = None) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=t.board_id,
    listId=t.list_id,
    title=t.title,
    description=t.description,
    priority=t.priority,
    dueDate=t.due_date,
    assigneeId=t.assignee_id,
    completed=t.completed,
    completedAt=t.completed_at,
    position=t.position,
    version=t.version,
    labels=labels or [],
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def _get_task_or_404(task_id: str, db: AsyncSession) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id).execution_options(populate_existing=True))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  return t


async def _get_list_or_404(list_id: str, db: AsyncSession) -> TaskList:
  res = await db.execute(select(TaskList).where(TaskList.id == list_id))
  l = res.scalar_one_or_none()
  if not l:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")
  return l


async def _validate_assignee(board_id: str, assignee_id: str | None, db: AsyncSession) -> None:
  if not assignee_id:
    return
  res = await db.execute(select(BoardMember.id).where(BoardMember.board_id == board_id, BoardMember.user_id == assignee_id))
  if not res.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignee must be a board member")


async def _remove_task_children(db: AsyncSession, task: Task) -> None:
  await db.execute(delete(Comment).where(Comment.task_id == task.id))
  await db.execute(delete(TaskLabel).where(TaskLabel.task_id == task.id))


@router.get("/lists/{list_id}/tasks", response_model=list[TaskOut])
async def list_tasks(list_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  l = await _get_list_or_404(list_id, db)
  await require_board_role(l.board_id, "viewer", user.id, db)
  tasks = await list_container_items(db, TASKS_IN_LIST, list_id)
  labels = await labels_by_task(db, [t.id for t in tasks])
  return [task_out(t, labels[t.id]) for t in tasks]


@router.post("/lists/{list_id}/tasks", response_model=TaskOut)
async def create_task(
  list_id: str,
  payload: TaskCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  caller_id = user.id

  async def work() -> Task:
    l = await _get_list_or_404(list_id, db)
    await require_board_role(l.board_id, "member", caller_id, db)
    await _validate_assignee(l.board_id, payload.assigneeId, db)
    t = Task(
      title=payload.title.strip(),
      description=payload.description or "",
      priority=payload.priority,
      due_date=payload.dueDate,
      assignee_id=payload.assigneeId,
      created_by=caller_id,
    )
    t = await insert_item(db, TASKS_IN_LIST, list_id, t, payload.position, caller_id)
    await attach_labels(db, task=t, label_ids=payload.labelIds)
    await write_audit(
      db,
      event_type="task.created",
      entity_type="Task",
      entity_id=t.id,
      board_id=t.board_id,
      task_id=t.id,
      actor_id=caller_id,
      payload={"title": t.title, "listId": list_id, "position": t.position},
    )
    return t

  t = await run_in_transaction(db, work, op="task.create")
  await db.refresh(t)
  if t.assignee_id and t.assignee_id != caller_id:
    emit_task_assigned(task_id=t.id, assignee_id=t.assignee_id)
  return task_out(t, (await labels_by_task(db, [t.id]))[t.id])


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await _get_task_or_404(task_id, db)
  await require_board_role(t.board_id, "viewer", user.id, db)
  return task_out(t, (await labels_by_task(db, [t.id]))[t.id])


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  caller_id = user.id
  fields_set = set(payload.model_fields_set) - {"version"}
  if not fields_set:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update")
  for field_name in fields_set & _NOT_NULLABLE:
    if getattr(payload, field_name) is None:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field_name} cannot be null")
  if "listId" in fields_set and not payload.listId:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid listId")

  async def work() -> tuple[Task, str | None]:
    t = await _get_task_or_404(task_id, db)
    await require_board_role(t.board_id, "member", caller_id, db)
    if payload.version is not None and t.version != payload.version:
      raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version conflict")

    if "listId" in fields_set:
      dest = await _get_list_or_404(payload.listId, db)
      if dest.board_id != t.board_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid listId (must be on the same board)")
    if "assigneeId" in fields_set:
      await _validate_assignee(t.board_id, payload.assigneeId, db)

    old_assignee = t.assignee_id
    from_list = t.list_id
    from_position = t.position
    moved_writes = 0
    # the move re-reads the task, so it runs before any field is set
    if fields_set & _MOVE_FIELDS:
      result = await move_item(
        db,
        TASKS_IN_LIST,
        task_id,
        payload.listId if "listId" in fields_set else None,
        payload.position,
        caller_id,
      )
      t = result.item
      moved_writes = result.writes

    changed: dict[str, Any] = {}
    for field_name, (model_attr, convert) in _UPDATABLE_FIELDS.items():
      if field_name not in fields_set:
        continue
      val = convert(getattr(payload, field_name))
      setattr(t, model_attr, val)
      changed[field_name] = val[:500] if field_name == "description" else val
    if "completed" in changed:
      if t.completed and t.completed_at is None:
        t.completed_at = utcnow()
      elif not t.completed:
        t.completed_at = None

    if changed and not moved_writes:
      t.version += 1
    if moved_writes:
      await write_audit(
        db,
        event_type="task.moved",
        entity_type="Task",
        entity_id=t.id,
        board_id=t.board_id,
        task_id=t.id,
        actor_id=caller_id,
        payload={"fromListId": from_list, "toListId": t.list_id, "fromPosition": from_position, "toPosition": t.position, "writes": moved_writes},
      )
    if changed:
      await write_audit(
        db,
        event_type="task.updated",
        entity_type="Task",
        entity_id=t.id,
        board_id=t.board_id,
        task_id=t.id,
        actor_id=caller_id,
        payload={"version": t.version, "changed": sorted(changed), "fields": changed},
      )
    return t, old_assignee

  t, old_assignee = await run_in_transaction(db, work, op="task.update")
  await db.refresh(t)
  if "assigneeId" in fields_set and t.assignee_id and t.assignee_id != old_assignee and t.assignee_id != caller_id:
    emit_task_assigned(task_id=t.id, assignee_id=t.assignee_id)
  return task_out(t, (await labels_by_task(db, [t.id]))[t.id])


@router.delete("/tasks/{task_id}", response_model=DeleteOut)
async def delete_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> DeleteOut:
  caller_id = user.id

  async def work() -> bool:
    t = await delete_item(db, TASKS_IN_LIST, task_id, caller_id, before_delete=_remove_task_children)
    if t is None:
      return False
    await write_audit(
      db,
      event_type="task.deleted",
      entity_type="Task",
      entity_id=task_id,
      board_id=t.board_id,
      actor_id=caller_id,
      payload={"title": t.title, "listId": t.list_id},
    )
    return True

  deleted = await run_in_transaction(db, work, op="task.delete")
  return DeleteOut(ok=True, deleted=deleted)
