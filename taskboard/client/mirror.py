"""
Client-side optimistic copy of a board's ordering.

A drag renumbers the local view immediately; ``drop`` then commits to the server
moved-item-first, siblings after, and falls back to a full re-fetch whenever any
write fails. The server store stays authoritative: the mirror never tries to
repair a partial commit locally.
"""

from __future__ import annotations

import asyncio
import copy
import enum
from dataclasses import dataclass, field, replace
from typing import Any, Literal

import httpx
import structlog

from taskboard import ordering as algo
from taskboard.client.api import ApiError, BoardApiClient

logger = structlog.get_logger()

MirrorKind = Literal["tasks", "lists"]


class DragPhase(str, enum.Enum):
  IDLE = "idle"
  DRAGGING = "dragging"
  HOVERING = "hovering"
  DROPPED = "dropped"
  COMMITTING = "committing"
  SETTLED = "settled"
  RECONCILING = "reconciling"


class ContainerBusy(RuntimeError):
  def __init__(self, container_id: str) -> None:
    super().__init__(f"Container {container_id} has a commit in flight")
    self.container_id = container_id


class PartialCommitFailure(RuntimeError):
  """Some sibling writes failed after the moved item was committed."""

  def __init__(self, *, item_id: str, failed: dict[str, str], attempted: int) -> None:
    super().__init__(f"{len(failed)} of {attempted} sibling updates failed after moving {item_id}")
    self.item_id = item_id
    self.failed = failed
    self.attempted = attempted


@dataclass
class MirrorItem:
  id: str
  container_id: str
  position: int
  title: str = ""
  data: dict[str, Any] = field(default_factory=dict)


@dataclass
class CommitOutcome:
  status: Literal["noop", "settled", "reconciled"]
  writes: int = 0
  error: str | None = None
  failure: PartialCommitFailure | None = None


Layout = dict[str, list[MirrorItem]]


def _describe(exc: BaseException) -> str:
  if isinstance(exc, ApiError):
    return f"{exc.status_code}: {exc.message}"
  if isinstance(exc, httpx.TimeoutException):
    return "request timed out"
  return str(exc) or exc.__class__.__name__


def _layout_snapshot(layout: Layout) -> dict[str, tuple[tuple[str, int], ...]]:
  return {cid: algo.snapshot(items) for cid, items in layout.items()}


class OptimisticMirror:
  def __init__(self, api: BoardApiClient, board_id: str, kind: MirrorKind = "tasks") -> None:
    if kind not in ("tasks", "lists"):
      raise ValueError("kind must be 'tasks' or 'lists'")
    self.api = api
    self.board_id = board_id
    self.kind = kind
    self.containers: Layout = {}
    self.last_failure: PartialCommitFailure | None = None
    self._in_flight: set[str] = set()

  async def refresh(self) -> None:
    board = await self.api.fetch_board(self.board_id)
    if self.kind == "lists":
      self.containers = {
        self.board_id: [
          MirrorItem(id=l["id"], container_id=self.board_id, position=l["position"], title=l["title"], data=l)
          for l in board["lists"]
        ]
      }
    else:
      self.containers = {
        l["id"]: [
          MirrorItem(id=t["id"], container_id=l["id"], position=t["position"], title=t["title"], data=t)
          for t in l["tasks"]
        ]
        for l in board["lists"]
      }
    for cid in self.containers:
      self.containers[cid] = self._ranked(self.containers[cid])

  @staticmethod
  def _ranked(items: list[MirrorItem]) -> list[MirrorItem]:
    by_id = {i.id: i for i in items}
    return [by_id[iid] for iid in algo.ordered_ids(items)]

  def items(self, container_id: str) -> list[MirrorItem]:
    return list(self.containers.get(container_id, []))

  def ids(self, container_id: str) -> list[str]:
    return [i.id for i in self.items(container_id)]

  def container_of(self, item_id: str) -> str:
    for cid, items in self.containers.items():
      if any(i.id == item_id for i in items):
        return cid
    raise KeyError(item_id)

  def is_busy(self, container_id: str) -> bool:
    return container_id in self._in_flight

  def begin_drag(self, item_id: str) -> DragGesture:
    origin = self.container_of(item_id)
    if origin in self._in_flight:
      raise ContainerBusy(origin)
    return DragGesture(self, item_id, origin)

  async def _send_move(self, item_id: str, container_id: str, position: int) -> Any:
    if self.kind == "lists":
      return await self.api.update_list(item_id, position=position)
    return await self.api.update_task(item_id, listId=container_id, position=position)

  async def _reconcile(self, *, reason: str, fallback: Layout | None = None) -> str | None:
    """
    Replace local state with a fresh server read.

    If the read fails, ``fallback`` (the last server-confirmed layout) is shown
    instead of the optimistic one.
    """
    logger.info("mirror_reconciling", board_id=self.board_id, kind=self.kind, reason=reason)
    try:
      await self.refresh()
    except Exception as exc:
      logger.exception("mirror_refresh_failed", board_id=self.board_id, kind=self.kind)
      if fallback is not None:
        self.containers = copy.deepcopy(fallback)
      return _describe(exc)
    return None


class DragGesture:
  """One drag, from pick-up to the end of its commit."""

  def __init__(self, mirror: OptimisticMirror, item_id: str, origin_id: str) -> None:
    self.mirror = mirror
    self.item_id = item_id
    self.origin_id = origin_id
    self.phase = DragPhase.DRAGGING
    self._before: Layout = copy.deepcopy(mirror.containers)
    self.target_id = origin_id
    self.target_index = algo.index_of(self._before[origin_id], item_id)
    self._writes = 0

  def _orders(self, container_id: str, index: int) -> dict[str, list[str]]:
    return algo.relocate(self._before, self.item_id, self.origin_id, container_id, index)

  def _layout_for(self, orders: dict[str, list[str]]) -> Layout:
    layout = copy.deepcopy(self._before)
    by_id = {i.id: i for items in self._before.values() for i in items}
    for cid, order in orders.items():
      layout[cid] = [replace(by_id[iid], container_id=cid, position=idx) for idx, iid in enumerate(order)]
    return layout

  def hover(self, container_id: str, index: int) -> bool:
    """Preview the drop at ``container_id``/``index``; returns whether the view changed."""
    if self.phase not in (DragPhase.DRAGGING, DragPhase.HOVERING):
      raise RuntimeError(f"Cannot hover in phase {self.phase.value}")
    if container_id not in self._before:
      raise KeyError(container_id)
    self.phase = DragPhase.HOVERING
    layout = self._layout_for(self._orders(container_id, index))
    self.target_id = container_id
    self.target_index = algo.clamp(index, len(layout[container_id]) - 1)
    if _layout_snapshot(layout) == _layout_snapshot(self.mirror.containers):
      return False
    self.mirror.containers = layout
    return True

  def cancel(self) -> None:
    self.mirror.containers = copy.deepcopy(self._before)
    self.phase = DragPhase.IDLE

  async def drop(self) -> CommitOutcome:
    if self.phase not in (DragPhase.DRAGGING, DragPhase.HOVERING):
      raise RuntimeError(f"Cannot drop in phase {self.phase.value}")
    self.phase = DragPhase.DROPPED
    mirror = self.mirror

    orders = self._orders(self.target_id, self.target_index)
    if self.target_id == self.origin_id and orders[self.origin_id] == algo.ordered_ids(self._before[self.origin_id]):
      mirror.containers = copy.deepcopy(self._before)
      self.phase = DragPhase.IDLE
      return CommitOutcome(status="noop")

    busy = [cid for cid in orders if mirror.is_busy(cid)]
    if busy:
      self.cancel()
      raise ContainerBusy(busy[0])

    layout = self._layout_for(orders)
    mirror.containers = layout
    siblings: list[tuple[str, str, int]] = []
    for cid, order in orders.items():
      before = [i for i in self._before[cid] if i.id != self.item_id]
      for iid, pos in algo.position_changes(before, order).items():
        if iid != self.item_id:
          siblings.append((iid, cid, pos))
    new_position = orders[self.target_id].index(self.item_id)

    self.phase = DragPhase.COMMITTING
    mirror._in_flight.update(orders)
    self._writes = 0
    try:
      return await self._commit(new_position, siblings)
    except Exception as exc:
      logger.exception("mirror_commit_aborted", item_id=self.item_id, container_id=self.target_id)
      await self._reconcile(writes=self._writes, error=_describe(exc))
      raise
    finally:
      mirror._in_flight.difference_update(orders)

  async def _commit(self, new_position: int, siblings: list[tuple[str, str, int]]) -> CommitOutcome:
    mirror = self.mirror
    self._writes = 1
    try:
      await mirror._send_move(self.item_id, self.target_id, new_position)
    except (ApiError, httpx.HTTPError) as exc:
      error = _describe(exc)
      logger.warning("mirror_move_failed", item_id=self.item_id, container_id=self.target_id, position=new_position, error=error)
      return await self._reconcile(writes=self._writes, error=error)

    if siblings:
      self._writes += len(siblings)
      results = await asyncio.gather(
        *[mirror._send_move(iid, cid, pos) for iid, cid, pos in siblings],
        return_exceptions=True,
      )
      failed: dict[str, str] = {}
      for (iid, _, _), res in zip(siblings, results):
        if isinstance(res, (ApiError, httpx.HTTPError)):
          failed[iid] = _describe(res)
        elif isinstance(res, BaseException):
          raise res
      if failed:
        failure = PartialCommitFailure(item_id=self.item_id, failed=failed, attempted=len(siblings))
        mirror.last_failure = failure
        logger.warning("partial_commit_failure", item_id=self.item_id, failed=failed, attempted=len(siblings))
        outcome = await self._reconcile(writes=self._writes, error=str(failure))
        outcome.failure = failure
        return outcome

    self.phase = DragPhase.SETTLED
    logger.debug("mirror_settled", item_id=self.item_id, container_id=self.target_id, position=new_position, writes=self._writes)
    self.phase = DragPhase.IDLE
    return CommitOutcome(status="settled", writes=self._writes)

  async def _reconcile(self, *, writes: int, error: str) -> CommitOutcome:
    self.phase = DragPhase.RECONCILING
    refresh_error = await self.mirror._reconcile(reason=error, fallback=self._before)
    self.phase = DragPhase.IDLE
    if refresh_error:
      error = f"{error}; refresh failed: {refresh_error}"
    return CommitOutcome(status="reconciled", writes=writes, error=error)
