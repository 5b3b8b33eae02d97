from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.deps import get_current_user, get_db
from taskboard.models import Notification, User, utcnow
from taskboard.schemas import NotificationBulkOut, NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_out(n: Notification) -> NotificationOut:
  return NotificationOut(
    id=n.id,
    type=n.type,
    content=n.content,
    entityType=n.entity_type,
    entityId=n.entity_id,
    readAt=n.read_at,
    createdAt=n.created_at,
  )


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
  unread_only: bool = False,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
  q = select(Notification).where(Notification.user_id == user.id)
  if unread_only:
    q = q.where(Notification.read_at.is_(None))
  res = await db.execute(q.order_by(Notification.created_at.desc()).limit(200))
  return [_notification_out(n) for n in res.scalars().all()]


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> NotificationOut:
  res = await db.execute(select(Notification).where(Notification.id == notification_id, Notification.user_id == user.id))
  n = res.scalar_one_or_none()
  if not n:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
  if n.read_at is None:
    n.read_at = utcnow()
    await db.commit()
  return _notification_out(n)


@router.post("/read-all", response_model=NotificationBulkOut)
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> NotificationBulkOut:
  res = await db.execute(
    update(Notification)
    .where(Notification.user_id == user.id, Notification.read_at.is_(None))
    .values(read_at=utcnow())
    .execution_options(synchronize_session=False)
  )
  await db.commit()
  return NotificationBulkOut(count=res.rowcount or 0)


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(select(Notification).where(Notification.id == notification_id, Notification.user_id == user.id))
  n = res.scalar_one_or_none()
  if not n:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
  await db.delete(n)
  await db.commit()
  return {"ok": True}


@router.delete("", response_model=NotificationBulkOut)
async def delete_all_notifications(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> NotificationBulkOut:
  res = await db.execute(delete(Notification).where(Notification.user_id == user.id))
  await db.commit()
  return NotificationBulkOut(count=res.rowcount or 0)
