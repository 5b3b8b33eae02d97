from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

Priority = Literal["LOW", "MEDIUM", "HIGH"]
BoardRole = Literal["viewer", "member", "admin"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    value = datetime.fromisoformat(s.replace("Z", "+00:00"))
  if isinstance(value, datetime):
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
  return value


class LoginIn(BaseModel):
  email: str
  password: str


class UserOut(BaseModel):
  id: str
  email: str
  name: str


class BoardCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=120)


class BoardUpdateIn(BaseModel):
  title: str = Field(min_length=1, max_length=120)


class BoardOut(BaseModel):
  id: str
  title: str
  ownerId: str
  role: str | None = None
  createdAt: datetime
  updatedAt: datetime


class MemberAddIn(BaseModel):
  email: str
  role: BoardRole = "member"


class MemberOut(BaseModel):
  userId: str
  email: str
  name: str
  role: str


class ListCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=120)
  position: int | None = Field(default=None, ge=0)


class ListUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=120)
  position: int | None = Field(default=None, ge=0)


class ListOut(BaseModel):
  id: str
  boardId: str
  title: str
  position: int


class LabelCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=64)
  color: str = Field(default="#64748b", max_length=32)


class LabelOut(BaseModel):
  id: str
  boardId: str
  name: str
  color: str


class TaskLabelIn(BaseModel):
  labelId: str


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=300)
  description: str = ""
  priority: Priority = "MEDIUM"
  dueDate: datetime | None = None
  assigneeId: str | None = None
  labelIds: list[str] = []
  position: int | None = Field(default=None, ge=0)

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  """Partial update: only fields present in the request body are applied."""

  version: int | None = None
  listId: str | None = None
  position: int | None = Field(default=None, ge=0)
  title: str | None = Field(default=None, min_length=1, max_length=300)
  description: str | None = None
  priority: Priority | None = None
  dueDate: datetime | None = None
  assigneeId: str | None = None
  completed: bool | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)

  @field_validator("assigneeId", mode="before")
  @classmethod
  def _blank_assignee_is_none(cls, v: object) -> object:
    if isinstance(v, str) and not v.strip():
      return None
    return v


class TaskOut(BaseModel):
  id: str
  boardId: str
  listId: str
  title: str
  description: str
  priority: str
  dueDate: datetime | None
  assigneeId: str | None
  completed: bool
  completedAt: datetime | None
  position: int
  version: int
  labels: list[LabelOut] = []
  createdAt: datetime
  updatedAt: datetime


class ListWithTasksOut(ListOut):
  tasks: list[TaskOut]


class BoardDetailOut(BoardOut):
  lists: list[ListWithTasksOut]


class DeleteOut(BaseModel):
  ok: bool = True
  deleted: bool


class CommentCreateIn(BaseModel):
  body: str = Field(min_length=1, max_length=10000)


class CommentOut(BaseModel):
  id: str
  taskId: str
  authorId: str
  authorName: str
  body: str
  createdAt: datetime
  updatedAt: datetime | None = None


class NotificationOut(BaseModel):
  id: str
  type: str
  content: str
  entityType: str | None
  entityId: str | None
  readAt: datetime | None
  createdAt: datetime


class NotificationBulkOut(BaseModel):
  ok: bool = True
  count: int


class AuditOut(BaseModel):
  id: str
  boardId: str | None
  taskId: str | None
  actorId: str | None
  eventType: str
  entityType: str
  entityId: str | None
  payload: dict[str, Any]
  createdAt: datetime
