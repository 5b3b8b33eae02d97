from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN, MEMBER, add_member, board_detail, create_board, create_tasks, login


async def _lists(client: AsyncClient, board_id: str) -> list[tuple[str, int]]:
  res = await client.get(f"/boards/{board_id}/lists")
  assert res.status_code == 200, res.text
  return [(l["title"], l["position"]) for l in res.json()]


@pytest.mark.anyio
async def test_new_board_has_default_lists(client: AsyncClient) -> None:
  await login(client, ADMIN)
  board = await create_board(client, "Lists")
  assert await _lists(client, board["id"]) == [("To Do", 0), ("In Progress", 1), ("Done", 2)]


@pytest.mark.anyio
async def test_create_list_appends_or_inserts(client: AsyncClient) -> None:
  await login(client, ADMIN)
  board = await create_board(client, "Lists")
  res = await client.post(f"/boards/{board['id']}/lists", json={"title": "Review"})
  assert res.status_code == 200, res.text
  assert res.json()["position"] == 3
  res = await client.post(f"/boards/{board['id']}/lists", json={"title": "Backlog", "position": 0})
  assert res.status_code == 200, res.text
  assert await _lists(client, board["id"]) == [
    ("Backlog", 0),
    ("To Do", 1),
    ("In Progress", 2),
    ("Done", 3),
    ("Review", 4),
  ]


@pytest.mark.anyio
async def test_reorder_list(client: AsyncClient) -> None:
  await login(client, ADMIN)
  board = await create_board(client, "Lists")
  done = (await board_detail(client, board["id"]))["lists"][2]
  res = await client.patch(f"/lists/{done['id']}", json={"position": 0})
  assert res.status_code == 200, res.text
  assert res.json()["position"] == 0
  assert await _lists(client, board["id"]) == [("Done", 0), ("To Do", 1), ("In Progress", 2)]


@pytest.mark.anyio
async def test_rename_and_move_list(client: AsyncClient) -> None:
  await login(client, ADMIN)
  board = await create_board(client, "Lists")
  todo = (await board_detail(client, board["id"]))["lists"][0]
  res = await client.patch(f"/lists/{todo['id']}", json={"title": "Later", "position": 9})
  assert res.status_code == 200, res.text
  assert await _lists(client, board["id"]) == [("In Progress", 0), ("Done", 1), ("Later", 2)]

  empty = await client.patch(f"/lists/{todo['id']}", json={})
  assert empty.status_code == 400


@pytest.mark.anyio
async def test_delete_list_removes_tasks_and_renumbers(client: AsyncClient) -> None:
  await login(client, ADMIN)
  board = await create_board(client, "Lists")
  lists = (await board_detail(client, board["id"]))["lists"]
  tasks = await create_tasks(client, lists[1]["id"], ["A", "B"])
  await client.post(f"/tasks/{tasks[0]['id']}/comments", json={"body": "hello"})

  res = await client.delete(f"/lists/{lists[1]['id']}")
  assert res.status_code == 200, res.text
  assert res.json() == {"ok": True, "deleted": True}
  assert await _lists(client, board["id"]) == [("To Do", 0), ("Done", 1)]
  assert (await client.get(f"/tasks/{tasks[0]['id']}")).status_code == 404

  again = await client.delete(f"/lists/{lists[1]['id']}")
  assert again.status_code == 200
  assert again.json()["deleted"] is False


@pytest.mark.anyio
async def test_delete_list_requires_admin(client: AsyncClient) -> None:
  await login(client, ADMIN)
  board = await create_board(client, "Lists")
  await add_member(client, board["id"], MEMBER, role="member")
  lists = (await board_detail(client, board["id"]))["lists"]

  await login(client, MEMBER)
  res = await client.delete(f"/lists/{lists[0]['id']}")
  assert res.status_code == 403
  # members may still reorder
  res = await client.patch(f"/lists/{lists[0]['id']}", json={"position": 2})
  assert res.status_code == 200, res.text
  assert await _lists(client, board["id"]) == [("In Progress", 0), ("Done", 1), ("To Do", 2)]
