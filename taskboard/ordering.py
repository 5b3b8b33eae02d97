"""
Dense position reindexing shared by the server store and the client mirror.

Every function is pure: it reads ``id``/``position`` off the given items and
returns a new id order for the container(s) involved. Index ``i`` of a returned
order is the item's new position, so applying an order always yields positions
``0..n-1``. ``position_changes`` turns an order into the minimal write set.

Items are ranked by ``(position, input order)``; unaffected items therefore keep
their relative order even if the input was not dense to begin with.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Protocol, Sequence


class Positioned(Protocol):
  @property
  def id(self) -> str: ...

  @property
  def position(self) -> int: ...


def ordered_ids(items: Iterable[Positioned]) -> list[str]:
  ranked = sorted(enumerate(items), key=lambda pair: (pair[1].position, pair[0]))
  return [item.id for _, item in ranked]


def clamp(position: int, size: int) -> int:
  return max(0, min(int(position), size))


def insert_at(items: Sequence[Positioned], item_id: str, position: int) -> list[str]:
  """New item at ``position`` (clamped to ``[0, n]``); members at or after it shift up."""
  order = [i for i in ordered_ids(items) if i != item_id]
  order.insert(clamp(position, len(order)), item_id)
  return order


def move_within(items: Sequence[Positioned], item_id: str, position: int) -> list[str]:
  order = ordered_ids(items)
  if item_id not in order:
    raise KeyError(item_id)
  order.remove(item_id)
  order.insert(clamp(position, len(order)), item_id)
  return order


def move_across(
  source: Sequence[Positioned],
  dest: Sequence[Positioned],
  item_id: str,
  position: int,
) -> tuple[list[str], list[str]]:
  """Close the gap in ``source``, open one in ``dest`` at ``position`` (clamped to ``[0, m]``)."""
  src = ordered_ids(source)
  if item_id not in src:
    raise KeyError(item_id)
  src.remove(item_id)
  dst = [i for i in ordered_ids(dest) if i != item_id]
  dst.insert(clamp(position, len(dst)), item_id)
  return src, dst


def relocate(
  containers: Mapping[str, Sequence[Positioned]],
  item_id: str,
  source_id: str,
  dest_id: str,
  position: int,
) -> dict[str, list[str]]:
  if source_id == dest_id:
    return {source_id: move_within(containers[source_id], item_id, position)}
  src, dst = move_across(containers[source_id], containers[dest_id], item_id, position)
  return {source_id: src, dest_id: dst}


def remove(items: Sequence[Positioned], item_id: str) -> list[str]:
  return [i for i in ordered_ids(items) if i != item_id]


def index_of(items: Sequence[Positioned], item_id: str) -> int:
  return ordered_ids(items).index(item_id)


def position_changes(items: Iterable[Positioned], order: Sequence[str]) -> dict[str, int]:
  current = {item.id: item.position for item in items}
  return {item_id: idx for idx, item_id in enumerate(order) if current.get(item_id) != idx}


def snapshot(items: Iterable[Positioned]) -> tuple[tuple[str, int], ...]:
  ranked = sorted(enumerate(items), key=lambda pair: (pair[1].position, pair[0]))
  return tuple((item.id, item.position) for _, item in ranked)


def is_dense(items: Iterable[Positioned]) -> bool:
  positions = sorted(item.position for item in items)
  return positions == list(range(len(positions)))
