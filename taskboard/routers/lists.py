from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.audit import write_audit
from taskboard.deps import get_current_user, get_db, require_board_role
from taskboard.models import Comment, Task, TaskLabel, TaskList, User
from taskboard.reordering import LISTS_IN_BOARD, delete_item, insert_item, list_container_items, move_item, run_in_transaction
from taskboard.schemas import DeleteOut, ListCreateIn, ListOut, ListUpdateIn

router = APIRouter(tags=["lists"])


def list_out(l: TaskList) -> ListOut:
  return ListOut(id=l.id, boardId=l.board_id, title=l.title, position=l.position)


async def _get_list_or_404(list_id: str, db: AsyncSession) -> TaskList:
  res = await db.execute(select(TaskList).where(TaskList.id == list_id).execution_options(populate_existing=True))
  l = res.scalar_one_or_none()
  if not l:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")
  return l


async def _remove_list_tasks(db: AsyncSession, l: TaskList) -> None:
  task_ids = select(Task.id).where(Task.list_id == l.id)
  await db.execute(delete(Comment).where(Comment.task_id.in_(task_ids)))
  await db.execute(delete(TaskLabel).where(TaskLabel.task_id.in_(task_ids)))
  await db.execute(delete(Task).where(Task.list_id == l.id).execution_options(synchronize_session=False))


@router.get("/boards/{board_id}/lists", response_model=list[ListOut])
async def list_lists(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[ListOut]:
  await require_board_role(board_id, "viewer", user.id, db)
  return [list_out(l) for l in await list_container_items(db, LISTS_IN_BOARD, board_id)]


@router.post("/boards/{board_id}/lists", response_model=ListOut)
async def create_list(
  board_id: str,
  payload: ListCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ListOut:
  caller_id = user.id
  await require_board_role(board_id, "member", caller_id, db)

  async def work() -> TaskList:
    l = await insert_item(db, LISTS_IN_BOARD, board_id, TaskList(title=payload.title.strip()), payload.position, caller_id)
    await write_audit(
      db,
      event_type="list.created",
      entity_type="List",
      entity_id=l.id,
      board_id=board_id,
      actor_id=caller_id,
      payload={"title": l.title, "position": l.position},
    )
    return l

  l = await run_in_transaction(db, work, op="list.create")
  return list_out(l)


@router.patch("/lists/{list_id}", response_model=ListOut)
async def update_list(list_id: str, payload: ListUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ListOut:
  caller_id = user.id
  fields_set = set(payload.model_fields_set)
  if not fields_set:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update")
  if "title" in fields_set and payload.title is None:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title cannot be null")

  async def work() -> TaskList:
    l = await _get_list_or_404(list_id, db)
    await require_board_role(l.board_id, "member", caller_id, db)
    from_position = l.position
    if "position" in fields_set:
      result = await move_item(db, LISTS_IN_BOARD, list_id, None, payload.position, caller_id)
      l = result.item
      if result.writes:
        await write_audit(
          db,
          event_type="list.moved",
          entity_type="List",
          entity_id=l.id,
          board_id=l.board_id,
          actor_id=caller_id,
          payload={"fromPosition": from_position, "toPosition": l.position, "writes": result.writes},
        )
    if "title" in fields_set:
      l.title = payload.title.strip()
      await write_audit(
        db,
        event_type="list.updated",
        entity_type="List",
        entity_id=l.id,
        board_id=l.board_id,
        actor_id=caller_id,
        payload={"title": l.title},
      )
    return l

  l = await run_in_transaction(db, work, op="list.update")
  return list_out(l)


@router.delete("/lists/{list_id}", response_model=DeleteOut)
async def delete_list(list_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> DeleteOut:
  caller_id = user.id

  async def work() -> bool:
    res = await db.execute(select(TaskList.board_id).where(TaskList.id == list_id))
    board_id = res.scalar_one_or_none()
    if board_id is None:
      return False
    await require_board_role(board_id, "admin", caller_id, db)
    l = await delete_item(db, LISTS_IN_BOARD, list_id, caller_id, before_delete=_remove_list_tasks)
    if l is None:
      return False
    await write_audit(
      db,
      event_type="list.deleted",
      entity_type="List",
      entity_id=list_id,
      board_id=board_id,
      actor_id=caller_id,
      payload={"title": l.title},
    )
    return True

  deleted = await run_in_transaction(db, work, op="list.delete")
  return DeleteOut(ok=True, deleted=deleted)
