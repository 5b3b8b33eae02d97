from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard import ordering as algo
from taskboard.config import settings
from taskboard.deps import caller_can_write
from taskboard.errors import AccessDenied, ConflictRetryable, NotFound
from taskboard.models import Board, Task, TaskList

logger = structlog.get_logger()

T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


@dataclass(frozen=True)
class Ordering:
  label: str
  item_model: type
  container_model: type
  container_label: str
  container_attr: str

  @property
  def container_column(self) -> Any:
    return getattr(self.item_model, self.container_attr)

  def container_of(self, item: Any) -> str:
    return getattr(item, self.container_attr)

  def board_of(self, container: Any) -> str:
    return container.id if self.container_model is Board else container.board_id

  def attach(self, item: Any, container: Any) -> None:
    setattr(item, self.container_attr, container.id)
    if self.item_model is Task:
      item.board_id = container.board_id


TASKS_IN_LIST = Ordering("Task", Task, TaskList, "List", "list_id")
LISTS_IN_BOARD = Ordering("List", TaskList, Board, "Board", "board_id")


@dataclass
class MoveResult:
  item: Any
  source_id: str
  dest_id: str
  writes: int


def _is_transient(exc: DBAPIError) -> bool:
  orig = getattr(exc, "orig", None)
  code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
  if code in _RETRYABLE_SQLSTATES:
    return True
  return isinstance(exc, OperationalError) and "database is locked" in str(exc).lower()


async def run_in_transaction(db: AsyncSession, work: Callable[[], Awaitable[T]], *, op: str) -> T:
  """
  Run ``work`` and commit; on conflict roll back and run it again from scratch.

  ``work`` must re-read everything it touches: a rollback expires every instance
  in the session.
  """
  attempts = max(1, int(settings.reorder_max_attempts))
  for attempt in range(1, attempts + 1):
    try:
      result = await work()
      await db.commit()
      return result
    except ConflictRetryable as exc:
      await db.rollback()
      if attempt >= attempts:
        logger.warning("reorder_conflict_exhausted", op=op, attempts=attempt, reason=exc.message)
        raise
      logger.info("reorder_conflict_retry", op=op, attempt=attempt, reason=exc.message)
    except DBAPIError as exc:
      await db.rollback()
      if not _is_transient(exc):
        raise
      if attempt >= attempts:
        logger.warning("reorder_conflict_exhausted", op=op, attempts=attempt, reason=str(exc.orig))
        raise ConflictRetryable("Concurrent update on this container; re-fetch and retry") from exc
      logger.info("reorder_conflict_retry", op=op, attempt=attempt, reason=str(exc.orig))
    except Exception:
      await db.rollback()
      raise
  raise ConflictRetryable("Concurrent update on this container; re-fetch and retry")


async def _get_container(db: AsyncSession, ordering: Ordering, container_id: str, *, lock: bool = False) -> Any:
  model = ordering.container_model
  q = select(model).where(model.id == container_id).execution_options(populate_existing=True)
  if lock:
    q = q.with_for_update()
  res = await db.execute(q)
  container = res.scalar_one_or_none()
  if container is None:
    raise NotFound(f"{ordering.container_label} not found")
  return container


async def _get_item(db: AsyncSession, ordering: Ordering, item_id: str) -> Any | None:
  model = ordering.item_model
  res = await db.execute(select(model).where(model.id == item_id).execution_options(populate_existing=True))
  return res.scalar_one_or_none()


async def _members(db: AsyncSession, ordering: Ordering, container_id: str) -> list[Any]:
  model = ordering.item_model
  res = await db.execute(
    select(model)
    .where(ordering.container_column == container_id)
    .order_by(model.position.asc(), model.created_at.asc())
    .execution_options(populate_existing=True)
  )
  return list(res.scalars().all())


async def _lock_containers(
  db: AsyncSession,
  ordering: Ordering,
  container_ids: Iterable[str],
  caller_id: str | None,
) -> tuple[dict[str, Any], dict[str, int]]:
  locked: dict[str, Any] = {}
  seen: dict[str, int] = {}
  # fixed lock order so two cross-container moves cannot deadlock
  for cid in sorted(set(container_ids)):
    container = await _get_container(db, ordering, cid, lock=True)
    if caller_id is not None and not await caller_can_write(db, ordering.board_of(container), caller_id):
      raise AccessDenied(f"No write access to this {ordering.container_label.lower()}")
    locked[cid] = container
    seen[cid] = container.order_version
  return locked, seen


async def _bump_versions(db: AsyncSession, ordering: Ordering, seen: dict[str, int]) -> None:
  model = ordering.container_model
  for cid in sorted(seen):
    res = await db.execute(
      update(model)
      .where(model.id == cid, model.order_version == seen[cid])
      .values(order_version=seen[cid] + 1)
      .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
      raise ConflictRetryable(f"{ordering.container_label} was reordered concurrently")


def _apply(members: Iterable[Any], changes: dict[str, int]) -> int:
  writes = 0
  for m in members:
    if m.id in changes:
      m.position = changes[m.id]
      writes += 1
  return writes


async def list_container_items(db: AsyncSession, ordering: Ordering, container_id: str) -> list[Any]:
  await _get_container(db, ordering, container_id)
  return await _members(db, ordering, container_id)


async def insert_item(
  db: AsyncSession,
  ordering: Ordering,
  container_id: str,
  item: Any,
  desired_position: int | None,
  caller_id: str | None,
) -> Any:
  """Place a new ``item`` at ``desired_position`` (append when None). Caller commits."""
  locked, seen = await _lock_containers(db, ordering, [container_id], caller_id)
  members = await _members(db, ordering, container_id)
  if not item.id:
    item.id = str(uuid.uuid4())

  target = len(members) if desired_position is None else desired_position
  order = algo.insert_at(members, item.id, target)
  _apply(members, algo.position_changes(members, order))
  item.position = order.index(item.id)
  ordering.attach(item, locked[container_id])
  db.add(item)
  await _bump_versions(db, ordering, seen)
  return item


async def move_item(
  db: AsyncSession,
  ordering: Ordering,
  item_id: str,
  dest_container_id: str | None,
  new_position: int | None,
  caller_id: str | None,
) -> MoveResult:
  """
  Same-container reorder or cross-container move. Caller commits.

  ``dest_container_id=None`` keeps the item in its container; ``new_position=None``
  keeps its index (same container) or appends (other container).
  """
  item = await _get_item(db, ordering, item_id)
  if item is None:
    raise NotFound(f"{ordering.label} not found")
  source_id = ordering.container_of(item)
  dest_id = dest_container_id or source_id

  locked, seen = await _lock_containers(db, ordering, [source_id, dest_id], caller_id)
  item = await _get_item(db, ordering, item_id)
  if item is None:
    raise NotFound(f"{ordering.label} not found")
  if ordering.container_of(item) != source_id:
    raise ConflictRetryable(f"{ordering.label} was moved concurrently")

  source_members = await _members(db, ordering, source_id)
  if dest_id == source_id:
    target = algo.index_of(source_members, item_id) if new_position is None else new_position
    order = algo.move_within(source_members, item_id, target)
    changes = algo.position_changes(source_members, order)
    writes = _apply(source_members, changes)
  else:
    dest_members = await _members(db, ordering, dest_id)
    target = len(dest_members) if new_position is None else new_position
    src_order, dst_order = algo.move_across(source_members, dest_members, item_id, target)
    src_changes = algo.position_changes([m for m in source_members if m.id != item_id], src_order)
    dst_changes = algo.position_changes(dest_members, dst_order)
    writes = _apply(source_members, src_changes) + _apply(dest_members, dst_changes)
    item.position = dst_changes[item_id]
    ordering.attach(item, locked[dest_id])
    writes += 1

  if writes:
    if hasattr(item, "version"):
      item.version += 1
    await _bump_versions(db, ordering, seen)
  return MoveResult(item=item, source_id=source_id, dest_id=dest_id, writes=writes)


async def delete_item(
  db: AsyncSession,
  ordering: Ordering,
  item_id: str,
  caller_id: str | None,
  *,
  before_delete: Callable[[AsyncSession, Any], Awaitable[None]] | None = None,
) -> Any | None:
  """Remove the item and close its gap. Returns None when it is already gone."""
  item = await _get_item(db, ordering, item_id)
  if item is None:
    return None
  container_id = ordering.container_of(item)

  _, seen = await _lock_containers(db, ordering, [container_id], caller_id)
  item = await _get_item(db, ordering, item_id)
  if item is None:
    return None
  if ordering.container_of(item) != container_id:
    raise ConflictRetryable(f"{ordering.label} was moved concurrently")

  members = await _members(db, ordering, container_id)
  remaining = [m for m in members if m.id != item_id]
  _apply(remaining, algo.position_changes(remaining, algo.remove(members, item_id)))
  if before_delete is not None:
    await before_delete(db, item)
  await db.delete(item)
  await _bump_versions(db, ordering, seen)
  return item
