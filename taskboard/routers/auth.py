from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.audit import write_audit
from taskboard.config import settings
from taskboard.deps import get_current_user, get_db
from taskboard.models import Session as DbSession, User
from taskboard.schemas import LoginIn, UserOut
from taskboard.security import SESSION_COOKIE_NAME, new_session_expires_at, verify_password

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name)


@router.post("/login", response_model=UserOut)
async def login(payload: LoginIn, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  email = (payload.email or "").strip().lower()
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    logger.info("login_failed", email=email)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
  if not u.active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")

  s = DbSession(user_id=u.id, expires_at=new_session_expires_at())
  db.add(s)
  await db.flush()
  await write_audit(db, event_type="auth.login", entity_type="User", entity_id=u.id, actor_id=u.id)
  await db.commit()

  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain or None,
    max_age=int(settings.session_ttl_days * 86400),
    path="/",
  )
  return _user_out(u)


@router.post("/logout")
async def logout(response: Response, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await db.execute(delete(DbSession).where(DbSession.user_id == user.id))
  await db.commit()
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return _user_out(user)
