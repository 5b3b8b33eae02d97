from __future__ import annotations

import random
from dataclasses import dataclass

import pytest

from taskboard import ordering as algo


@dataclass
class Item:
  id: str
  position: int


def _items(*ids: str) -> list[Item]:
  return [Item(i, idx) for idx, i in enumerate(ids)]


def _apply(order: list[str]) -> list[Item]:
  return [Item(i, idx) for idx, i in enumerate(order)]


def test_move_within_to_front() -> None:
  l1 = _items("A", "B", "C")
  order = algo.move_within(l1, "C", 0)
  assert order == ["C", "A", "B"]
  assert algo.position_changes(l1, order) == {"C": 0, "A": 1, "B": 2}


def test_move_across_containers() -> None:
  l1 = _items("A", "B")
  l2 = _items("X")
  src, dst = algo.move_across(l1, l2, "A", 0)
  assert src == ["B"]
  assert dst == ["A", "X"]
  assert algo.position_changes([i for i in l1 if i.id != "A"], src) == {"B": 0}
  assert algo.position_changes(l2, dst) == {"A": 0, "X": 1}


def test_remove_closes_gap() -> None:
  l1 = _items("A", "B", "C", "D")
  order = algo.remove(l1, "B")
  assert order == ["A", "C", "D"]
  remaining = [i for i in l1 if i.id != "B"]
  assert algo.position_changes(remaining, order) == {"C": 1, "D": 2}


def test_insert_into_empty_container_clamps() -> None:
  assert algo.insert_at([], "Z", 5) == ["Z"]


def test_insert_shifts_members_at_and_after_position() -> None:
  l1 = _items("A", "B", "C")
  order = algo.insert_at(l1, "N", 1)
  assert order == ["A", "N", "B", "C"]
  assert algo.position_changes(l1, order) == {"N": 1, "B": 2, "C": 3}


@pytest.mark.parametrize("position", [-3, 0, 1, 2, 99])
def test_move_within_clamps_target(position: int) -> None:
  order = algo.move_within(_items("A", "B", "C"), "B", position)
  expected = max(0, min(position, 2))
  assert order.index("B") == expected
  assert sorted(order) == ["A", "B", "C"]


def test_move_to_current_position_is_noop() -> None:
  l1 = _items("A", "B", "C")
  for item in l1:
    order = algo.move_within(l1, item.id, item.position)
    assert algo.position_changes(l1, order) == {}


def test_move_unknown_item_raises() -> None:
  with pytest.raises(KeyError):
    algo.move_within(_items("A"), "Q", 0)
  with pytest.raises(KeyError):
    algo.move_across(_items("A"), [], "Q", 0)


def test_ties_keep_input_order() -> None:
  items = [Item("A", 0), Item("B", 1), Item("C", 1), Item("D", 2)]
  assert algo.ordered_ids(items) == ["A", "B", "C", "D"]
  order = algo.move_within(items, "D", 0)
  assert order == ["D", "A", "B", "C"]
  assert algo.position_changes(items, order) == {"D": 0, "A": 1, "B": 2, "C": 3}


def test_relocate_same_and_cross_container() -> None:
  containers = {"L1": _items("A", "B"), "L2": _items("X")}
  assert algo.relocate(containers, "B", "L1", "L1", 0) == {"L1": ["B", "A"]}
  assert algo.relocate(containers, "B", "L1", "L2", 1) == {"L1": ["A"], "L2": ["X", "B"]}


def test_snapshot_is_ranked_and_comparable() -> None:
  a = [Item("B", 1), Item("A", 0)]
  b = [Item("A", 0), Item("B", 1)]
  assert algo.snapshot(a) == algo.snapshot(b) == (("A", 0), ("B", 1))
  assert algo.snapshot(a) != algo.snapshot([Item("A", 1), Item("B", 0)])


def test_random_operation_sequences_stay_dense() -> None:
  rng = random.Random(20261019)
  containers: dict[str, list[Item]] = {"L1": [], "L2": [], "L3": []}
  next_id = 0

  for _ in range(400):
    op = rng.choice(["insert", "insert", "move", "move", "delete"])
    cid = rng.choice(list(containers))
    items = containers[cid]

    if op == "insert" or not items:
      next_id += 1
      containers[cid] = _apply(algo.insert_at(items, f"T{next_id}", rng.randint(-1, len(items) + 2)))
    elif op == "delete":
      victim = rng.choice(items)
      before = {i.id: i.position for i in items}
      containers[cid] = _apply(algo.remove(items, victim.id))
      after = {i.id: i.position for i in containers[cid]}
      for iid, pos in after.items():
        assert pos == (before[iid] - 1 if before[iid] > victim.position else before[iid])
    else:
      moved = rng.choice(items)
      dest = rng.choice(list(containers))
      target = rng.randint(-1, len(containers[dest]) + 2)
      src_before = algo.ordered_ids(items)
      dest_before = algo.ordered_ids(containers[dest])
      orders = algo.relocate(containers, moved.id, cid, dest, target)
      for k, order in orders.items():
        containers[k] = _apply(order)
      if dest == cid:
        assert [i for i in orders[cid] if i != moved.id] == [i for i in src_before if i != moved.id]
      else:
        assert len(orders[cid]) == len(src_before) - 1
        assert len(orders[dest]) == len(dest_before) + 1
        assert [i for i in orders[dest] if i != moved.id] == dest_before

    for k, items_k in containers.items():
      assert algo.is_dense(items_k), (op, k, items_k)
