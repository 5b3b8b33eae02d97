from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from conftest import ADMIN, MEMBER, OUTSIDER, add_member, board_detail, create_board, create_tasks, list_state, login
from taskboard.db import SessionLocal
from taskboard.models import AuditEvent, TaskList


async def _setup(client: AsyncClient, titles: list[str]) -> tuple[dict, list[dict], list[dict]]:
  await login(client, ADMIN)
  board = await create_board(client, "Positions")
  lists = (await board_detail(client, board["id"]))["lists"]
  tasks = await create_tasks(client, lists[0]["id"], titles)
  return board, lists, tasks


async def _order_version(list_id: str) -> int:
  async with SessionLocal() as db:
    res = await db.execute(select(TaskList.order_version).where(TaskList.id == list_id))
    return res.scalar_one()


@pytest.mark.anyio
async def test_new_tasks_append_with_dense_positions(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B", "C"])
  assert [t["position"] for t in tasks] == [0, 1, 2]
  assert await list_state(client, lists[0]["id"]) == [("A", 0), ("B", 1), ("C", 2)]


@pytest.mark.anyio
async def test_create_task_at_position_shifts_siblings(client: AsyncClient) -> None:
  _, lists, _ = await _setup(client, ["A", "B"])
  res = await client.post(f"/lists/{lists[0]['id']}/tasks", json={"title": "N", "position": 0})
  assert res.status_code == 200, res.text
  assert res.json()["position"] == 0
  assert await list_state(client, lists[0]["id"]) == [("N", 0), ("A", 1), ("B", 2)]


@pytest.mark.anyio
async def test_insert_into_empty_list_clamps_position(client: AsyncClient) -> None:
  _, lists, _ = await _setup(client, [])
  res = await client.post(f"/lists/{lists[2]['id']}/tasks", json={"title": "Z", "position": 5})
  assert res.status_code == 200, res.text
  assert await list_state(client, lists[2]["id"]) == [("Z", 0)]


@pytest.mark.anyio
async def test_move_within_list_to_front(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B", "C"])
  res = await client.patch(f"/tasks/{tasks[2]['id']}", json={"position": 0})
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["position"] == 0
  assert body["version"] == tasks[2]["version"] + 1
  assert await list_state(client, lists[0]["id"]) == [("C", 0), ("A", 1), ("B", 2)]


@pytest.mark.anyio
async def test_move_across_lists(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B"])
  (x,) = await create_tasks(client, lists[1]["id"], ["X"])

  res = await client.patch(f"/tasks/{tasks[0]['id']}", json={"listId": lists[1]["id"], "position": 0})
  assert res.status_code == 200, res.text
  assert res.json()["listId"] == lists[1]["id"]

  assert await list_state(client, lists[0]["id"]) == [("B", 0)]
  assert await list_state(client, lists[1]["id"]) == [("A", 0), ("X", 1)]


@pytest.mark.anyio
async def test_move_across_lists_without_position_appends(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B"])
  await create_tasks(client, lists[1]["id"], ["X", "Y"])
  res = await client.patch(f"/tasks/{tasks[1]['id']}", json={"listId": lists[1]["id"]})
  assert res.status_code == 200, res.text
  assert await list_state(client, lists[1]["id"]) == [("X", 0), ("Y", 1), ("B", 2)]


@pytest.mark.anyio
async def test_move_position_is_clamped(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B", "C"])
  res = await client.patch(f"/tasks/{tasks[0]['id']}", json={"position": 42})
  assert res.status_code == 200, res.text
  assert res.json()["position"] == 2
  assert await list_state(client, lists[0]["id"]) == [("B", 0), ("C", 1), ("A", 2)]


@pytest.mark.anyio
async def test_move_to_current_position_writes_nothing(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B", "C"])
  version_before = await _order_version(lists[0]["id"])

  res = await client.patch(f"/tasks/{tasks[1]['id']}", json={"listId": lists[0]["id"], "position": 1})
  assert res.status_code == 200, res.text
  assert res.json()["version"] == tasks[1]["version"]
  assert await _order_version(lists[0]["id"]) == version_before
  assert await list_state(client, lists[0]["id"]) == [("A", 0), ("B", 1), ("C", 2)]

  async with SessionLocal() as db:
    res = await db.execute(select(func.count()).select_from(AuditEvent).where(AuditEvent.event_type == "task.moved"))
    assert res.scalar_one() == 0


@pytest.mark.anyio
async def test_move_and_field_update_in_one_request(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B"])
  res = await client.patch(
    f"/tasks/{tasks[1]['id']}",
    json={"listId": lists[2]["id"], "position": 0, "title": "B done", "completed": True, "priority": "HIGH"},
  )
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["title"] == "B done"
  assert body["completed"] is True
  assert body["completedAt"] is not None
  assert body["priority"] == "HIGH"
  assert body["listId"] == lists[2]["id"]
  assert await list_state(client, lists[2]["id"]) == [("B done", 0)]
  assert await list_state(client, lists[0]["id"]) == [("A", 0)]


@pytest.mark.anyio
async def test_delete_renumbers_remaining_tasks(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B", "C", "D"])
  res = await client.delete(f"/tasks/{tasks[1]['id']}")
  assert res.status_code == 200, res.text
  assert res.json() == {"ok": True, "deleted": True}
  assert await list_state(client, lists[0]["id"]) == [("A", 0), ("C", 1), ("D", 2)]


@pytest.mark.anyio
async def test_delete_is_idempotent(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B"])
  first = await client.delete(f"/tasks/{tasks[0]['id']}")
  assert first.status_code == 200, first.text
  second = await client.delete(f"/tasks/{tasks[0]['id']}")
  assert second.status_code == 200, second.text
  assert second.json() == {"ok": True, "deleted": False}
  assert await list_state(client, lists[0]["id"]) == [("B", 0)]


@pytest.mark.anyio
async def test_move_unknown_task_or_list_is_404(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A"])
  missing_task = await client.patch("/tasks/does-not-exist", json={"position": 0})
  assert missing_task.status_code == 404
  missing_list = await client.patch(f"/tasks/{tasks[0]['id']}", json={"listId": "does-not-exist", "position": 0})
  assert missing_list.status_code == 404
  assert await list_state(client, lists[0]["id"]) == [("A", 0)]


@pytest.mark.anyio
async def test_move_to_list_on_other_board_is_rejected(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A"])
  other = await create_board(client, "Other")
  other_list = (await board_detail(client, other["id"]))["lists"][0]
  res = await client.patch(f"/tasks/{tasks[0]['id']}", json={"listId": other_list["id"], "position": 0})
  assert res.status_code == 400
  assert await list_state(client, lists[0]["id"]) == [("A", 0)]


@pytest.mark.anyio
async def test_empty_update_is_rejected(client: AsyncClient) -> None:
  _, _, tasks = await _setup(client, ["A"])
  res = await client.patch(f"/tasks/{tasks[0]['id']}", json={})
  assert res.status_code == 400
  res = await client.patch(f"/tasks/{tasks[0]['id']}", json={"version": 0})
  assert res.status_code == 400


@pytest.mark.anyio
async def test_stale_version_is_a_conflict(client: AsyncClient) -> None:
  _, lists, tasks = await _setup(client, ["A", "B"])
  ok = await client.patch(f"/tasks/{tasks[0]['id']}", json={"title": "A2", "version": tasks[0]["version"]})
  assert ok.status_code == 200, ok.text
  stale = await client.patch(f"/tasks/{tasks[0]['id']}", json={"position": 1, "version": tasks[0]["version"]})
  assert stale.status_code == 409
  assert await list_state(client, lists[0]["id"]) == [("A2", 0), ("B", 1)]


@pytest.mark.anyio
async def test_viewer_and_outsider_cannot_reorder(client: AsyncClient) -> None:
  board, lists, tasks = await _setup(client, ["A", "B"])
  await add_member(client, board["id"], MEMBER, role="viewer")

  await login(client, MEMBER)
  assert (await client.get(f"/lists/{lists[0]['id']}/tasks")).status_code == 200
  res = await client.patch(f"/tasks/{tasks[1]['id']}", json={"position": 0})
  assert res.status_code == 403
  res = await client.delete(f"/tasks/{tasks[1]['id']}")
  assert res.status_code == 403

  await login(client, OUTSIDER)
  assert (await client.get(f"/lists/{lists[0]['id']}/tasks")).status_code == 403
  res = await client.post(f"/lists/{lists[0]['id']}/tasks", json={"title": "Nope"})
  assert res.status_code == 403

  await login(client, ADMIN)
  assert await list_state(client, lists[0]["id"]) == [("A", 0), ("B", 1)]


@pytest.mark.anyio
async def test_board_detail_returns_ordered_lists_and_tasks(client: AsyncClient) -> None:
  board, lists, tasks = await _setup(client, ["A", "B", "C"])
  await client.patch(f"/tasks/{tasks[2]['id']}", json={"position": 0})
  detail = await board_detail(client, board["id"])
  assert [l["title"] for l in detail["lists"]] == ["To Do", "In Progress", "Done"]
  assert [(t["title"], t["position"]) for t in detail["lists"][0]["tasks"]] == [("C", 0), ("A", 1), ("B", 2)]
  assert detail["role"] == "admin"
