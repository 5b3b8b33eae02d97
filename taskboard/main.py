from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from taskboard.config import settings
from taskboard.errors import register_exception_handlers
from taskboard.log import configure_logging
from taskboard.middleware import request_context_middleware
from taskboard.notifications.events import drain_pending
from taskboard.routers.audit import router as audit_router
from taskboard.routers.auth import router as auth_router
from taskboard.routers.boards import router as boards_router
from taskboard.routers.comments import router as comments_router
from taskboard.routers.labels import router as labels_router
from taskboard.routers.lists import router as lists_router
from taskboard.routers.notifications import router as notifications_router
from taskboard.routers.tasks import router as tasks_router

configure_logging()

app = FastAPI(title="Taskboard API", version="0.1.0")

register_exception_handlers(app)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())
app.middleware("http")(request_context_middleware)

app.include_router(auth_router)
app.include_router(boards_router)
app.include_router(lists_router)
app.include_router(tasks_router)
app.include_router(labels_router)
app.include_router(comments_router)
app.include_router(notifications_router)
app.include_router(audit_router)


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.on_event("shutdown")
async def _shutdown() -> None:
  await drain_pending()
