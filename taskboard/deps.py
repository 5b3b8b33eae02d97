from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.db import SessionLocal
from taskboard.models import BoardMember, Session as DbSession, User
from taskboard.security import SESSION_COOKIE_NAME, as_utc

# role order: viewer < member < admin
ROLE_ORDER = {"viewer": 0, "member": 1, "admin": 2}


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


async def get_current_user(
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User:
  if not session_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

  res = await db.execute(select(DbSession).where(DbSession.id == session_id))
  s = res.scalar_one_or_none()
  if not s:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
  if as_utc(s.expires_at) < datetime.now(timezone.utc):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")

  ures = await db.execute(select(User).where(User.id == s.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  if not u.active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")
  return u


async def board_role(board_id: str, user_id: str, db: AsyncSession) -> str | None:
  res = await db.execute(
    select(BoardMember.role).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id)
  )
  return res.scalar_one_or_none()


async def require_board_role(board_id: str, min_role: str, user_id: str, db: AsyncSession) -> str:
  role = await board_role(board_id, user_id, db)
  if role is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No board access")
  if ROLE_ORDER.get(role, -1) < ROLE_ORDER.get(min_role, 0):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
  return role


async def caller_can_write(db: AsyncSession, board_id: str, caller_id: str) -> bool:
  role = await board_role(board_id, caller_id, db)
  return ROLE_ORDER.get(role or "", -1) >= ROLE_ORDER["member"]
