from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.audit import write_audit
from taskboard.deps import get_current_user, get_db, require_board_role
from taskboard.models import (
  AuditEvent,
  Board,
  BoardMember,
  Comment,
  Label,
  Task,
  TaskLabel,
  TaskList,
  User,
)
from taskboard.routers.labels import labels_by_task
from taskboard.routers.lists import list_out
from taskboard.routers.tasks import task_out
from taskboard.schemas import BoardCreateIn, BoardDetailOut, BoardOut, BoardUpdateIn, ListWithTasksOut, MemberAddIn, MemberOut

router = APIRouter(prefix="/boards", tags=["boards"])

DEFAULT_LISTS = ("To Do", "In Progress", "Done")


def _board_out(b: Board, role: str | None = None) -> BoardOut:
  return BoardOut(id=b.id, title=b.title, ownerId=b.owner_id, role=role, createdAt=b.created_at, updatedAt=b.updated_at)


async def _delete_board_everything(db: AsyncSession, *, board_id: str) -> None:
  task_ids = select(Task.id).where(Task.board_id == board_id)
  await db.execute(delete(Comment).where(Comment.task_id.in_(task_ids)))
  await db.execute(delete(TaskLabel).where(TaskLabel.task_id.in_(task_ids)))
  await db.execute(delete(Task).where(Task.board_id == board_id))
  await db.execute(delete(Label).where(Label.board_id == board_id))
  await db.execute(delete(TaskList).where(TaskList.board_id == board_id))
  await db.execute(delete(AuditEvent).where(AuditEvent.board_id == board_id))
  await db.execute(delete(BoardMember).where(BoardMember.board_id == board_id))
  await db.execute(delete(Board).where(Board.id == board_id))


async def _admin_count(db: AsyncSession, board_id: str) -> int:
  res = await db.execute(
    select(func.count()).select_from(BoardMember).where(BoardMember.board_id == board_id, BoardMember.role == "admin")
  )
  return int(res.scalar_one() or 0)


async def _member_out(db: AsyncSession, board_id: str, user_id: str) -> MemberOut:
  res = await db.execute(
    select(BoardMember, User)
    .join(User, User.id == BoardMember.user_id)
    .where(BoardMember.board_id == board_id, BoardMember.user_id == user_id)
  )
  m, u = res.one()
  return MemberOut(userId=u.id, email=u.email, name=u.name, role=m.role)


@router.get("", response_model=list[BoardOut])
async def list_boards(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[BoardOut]:
  res = await db.execute(
    select(Board, BoardMember.role)
    .join(BoardMember, BoardMember.board_id == Board.id)
    .where(BoardMember.user_id == user.id)
    .order_by(Board.updated_at.desc())
  )
  return [_board_out(b, role) for b, role in res.all()]


@router.post("", response_model=BoardOut)
async def create_board(payload: BoardCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  title = payload.title.strip()
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")

  b = Board(title=title, owner_id=user.id)
  db.add(b)
  await db.flush()
  db.add(BoardMember(board_id=b.id, user_id=user.id, role="admin"))
  for idx, list_title in enumerate(DEFAULT_LISTS):
    db.add(TaskList(board_id=b.id, title=list_title, position=idx))

  await write_audit(
    db,
    event_type="board.created",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=user.id,
    payload={"title": b.title},
  )
  await db.commit()
  return _board_out(b, "admin")


@router.get("/{board_id}", response_model=BoardDetailOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardDetailOut:
  role = await require_board_role(board_id, "viewer", user.id, db)
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")

  lres = await db.execute(
    select(TaskList).where(TaskList.board_id == board_id).order_by(TaskList.position.asc(), TaskList.created_at.asc())
  )
  lists = list(lres.scalars().all())
  tres = await db.execute(
    select(Task).where(Task.board_id == board_id).order_by(Task.position.asc(), Task.created_at.asc())
  )
  tasks = list(tres.scalars().all())
  labels = await labels_by_task(db, [t.id for t in tasks])

  by_list: dict[str, list] = {l.id: [] for l in lists}
  for t in tasks:
    by_list.setdefault(t.list_id, []).append(task_out(t, labels[t.id]))

  out = _board_out(b, role)
  return BoardDetailOut(
    **out.model_dump(),
    lists=[ListWithTasksOut(**list_out(l).model_dump(), tasks=by_list[l.id]) for l in lists],
  )


@router.patch("/{board_id}", response_model=BoardOut)
async def update_board(
  board_id: str,
  payload: BoardUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  role = await require_board_role(board_id, "admin", user.id, db)
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
  title = payload.title.strip()
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")

  if title != b.title:
    await write_audit(
      db,
      event_type="board.updated",
      entity_type="Board",
      entity_id=b.id,
      board_id=b.id,
      actor_id=user.id,
      payload={"from": b.title, "to": title},
    )
    b.title = title
    await db.commit()
    await db.refresh(b)
  return _board_out(b, role)


@router.delete("/{board_id}")
async def delete_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await require_board_role(board_id, "admin", user.id, db)
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")

  await _delete_board_everything(db, board_id=board_id)
  # board-scoped audit rows go with the board; keep a global record of the deletion
  await write_audit(db, event_type="board.deleted", entity_type="Board", entity_id=board_id, actor_id=user.id, payload={"title": b.title})
  await db.commit()
  return {"ok": True}


@router.get("/{board_id}/members", response_model=list[MemberOut])
async def list_members(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[MemberOut]:
  await require_board_role(board_id, "viewer", user.id, db)
  res = await db.execute(
    select(BoardMember, User)
    .join(User, User.id == BoardMember.user_id)
    .where(BoardMember.board_id == board_id)
    .order_by(BoardMember.created_at.asc())
  )
  return [MemberOut(userId=u.id, email=u.email, name=u.name, role=m.role) for m, u in res.all()]


@router.post("/{board_id}/members", response_model=MemberOut)
async def add_member(board_id: str, payload: MemberAddIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MemberOut:
  await require_board_role(board_id, "admin", user.id, db)
  email = payload.email.strip().lower()
  if not email:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="email is required")
  ures = await db.execute(select(User).where(User.email == email))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

  mres = await db.execute(select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == u.id))
  m = mres.scalar_one_or_none()
  if m is None:
    db.add(BoardMember(board_id=board_id, user_id=u.id, role=payload.role))
    event_type = "board.member.added"
  else:
    if m.role == "admin" and payload.role != "admin" and await _admin_count(db, board_id) <= 1:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Board must keep at least one admin")
    m.role = payload.role
    event_type = "board.member.updated"

  await write_audit(
    db,
    event_type=event_type,
    entity_type="BoardMember",
    entity_id=u.id,
    board_id=board_id,
    actor_id=user.id,
    payload={"email": email, "role": payload.role},
  )
  await db.commit()
  return await _member_out(db, board_id, u.id)


@router.delete("/{board_id}/members/{user_id}")
async def remove_member(board_id: str, user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await require_board_role(board_id, "admin", user.id, db)
  mres = await db.execute(select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id))
  m = mres.scalar_one_or_none()
  if m is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
  if m.role == "admin" and await _admin_count(db, board_id) <= 1:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Board must keep at least one admin")

  await db.delete(m)
  await write_audit(
    db,
    event_type="board.member.removed",
    entity_type="BoardMember",
    entity_id=user_id,
    board_id=board_id,
    actor_id=user.id,
  )
  await db.commit()
  return {"ok": True}
