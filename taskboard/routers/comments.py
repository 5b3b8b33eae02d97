from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.audit import write_audit
from taskboard.deps import ROLE_ORDER, get_current_user, get_db, require_board_role
from taskboard.models import Comment, Task, User, utcnow
from taskboard.schemas import CommentCreateIn, CommentOut

router = APIRouter(tags=["comments"])


def _comment_out(c: Comment, author_name: str) -> CommentOut:
  return CommentOut(
    id=c.id,
    taskId=c.task_id,
    authorId=c.author_id,
    authorName=author_name,
    body=c.body,
    createdAt=c.created_at,
    updatedAt=c.updated_at,
  )


async def _get_task_or_404(task_id: str, db: AsyncSession) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  return t


@router.get("/tasks/{task_id}/comments", response_model=list[CommentOut])
async def list_comments(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[CommentOut]:
  t = await _get_task_or_404(task_id, db)
  await require_board_role(t.board_id, "viewer", user.id, db)
  res = await db.execute(
    select(Comment, User.name)
    .join(User, User.id == Comment.author_id)
    .where(Comment.task_id == task_id)
    .order_by(Comment.created_at.asc())
  )
  return [_comment_out(c, name) for c, name in res.all()]


@router.post("/tasks/{task_id}/comments", response_model=CommentOut)
async def add_comment(
  task_id: str,
  payload: CommentCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  t = await _get_task_or_404(task_id, db)
  await require_board_role(t.board_id, "member", user.id, db)
  body = payload.body.strip()
  if not body:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="body is required")
  c = Comment(task_id=task_id, author_id=user.id, body=body)
  db.add(c)
  await db.flush()
  await write_audit(
    db,
    event_type="comment.created",
    entity_type="Comment",
    entity_id=c.id,
    board_id=t.board_id,
    task_id=task_id,
    actor_id=user.id,
    payload={"body": body[:500]},
  )
  await db.commit()
  return _comment_out(c, user.name)


@router.patch("/comments/{comment_id}", response_model=CommentOut)
async def update_comment(
  comment_id: str,
  payload: CommentCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  res = await db.execute(select(Comment, Task.board_id).join(Task, Task.id == Comment.task_id).where(Comment.id == comment_id))
  row = res.one_or_none()
  if row is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
  c, board_id = row
  await require_board_role(board_id, "member", user.id, db)
  if c.author_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit your own comments")
  body = payload.body.strip()
  if not body:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="body is required")

  c.body = body
  c.updated_at = utcnow()
  await write_audit(
    db,
    event_type="comment.updated",
    entity_type="Comment",
    entity_id=c.id,
    board_id=board_id,
    task_id=c.task_id,
    actor_id=user.id,
    payload={"body": body[:500]},
  )
  await db.commit()
  return _comment_out(c, user.name)


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(select(Comment, Task.board_id).join(Task, Task.id == Comment.task_id).where(Comment.id == comment_id))
  row = res.one_or_none()
  if row is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
  c, board_id = row
  role = await require_board_role(board_id, "viewer", user.id, db)
  if c.author_id != user.id and ROLE_ORDER[role] < ROLE_ORDER["admin"]:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author or a board admin can delete this comment")

  await db.delete(c)
  await write_audit(
    db,
    event_type="comment.deleted",
    entity_type="Comment",
    entity_id=comment_id,
    board_id=board_id,
    task_id=c.task_id,
    actor_id=user.id,
  )
  await db.commit()
  return {"ok": True}
