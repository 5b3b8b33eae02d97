from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

from conftest import ADMIN, board_detail, create_board, create_tasks, list_state, login
from taskboard import reordering
from taskboard.errors import ConflictRetryable


def _flaky_bump(monkeypatch: pytest.MonkeyPatch, failures: int, make_error) -> dict[str, int]:
  calls = {"n": 0}
  real = reordering._bump_versions

  async def flaky(db, ordering, seen):
    calls["n"] += 1
    if calls["n"] <= failures:
      raise make_error()
    await real(db, ordering, seen)

  monkeypatch.setattr(reordering, "_bump_versions", flaky)
  return calls


def _conflict() -> Exception:
  return ConflictRetryable("List was reordered concurrently")


def _locked() -> Exception:
  return OperationalError("UPDATE lists SET order_version=?", {}, Exception("database is locked"))


async def _setup(client: AsyncClient) -> tuple[str, list[dict]]:
  await login(client, ADMIN)
  board = await create_board(client, "Retry")
  list_id = (await board_detail(client, board["id"]))["lists"][0]["id"]
  tasks = await create_tasks(client, list_id, ["A", "B", "C"])
  return list_id, tasks


@pytest.mark.anyio
@pytest.mark.parametrize("make_error", [_conflict, _locked])
async def test_single_conflict_is_retried(client: AsyncClient, monkeypatch: pytest.MonkeyPatch, make_error) -> None:
  list_id, tasks = await _setup(client)
  calls = _flaky_bump(monkeypatch, 1, make_error)

  with capture_logs() as logs:
    res = await client.patch(f"/tasks/{tasks[2]['id']}", json={"position": 0})
  assert res.status_code == 200, res.text
  assert calls["n"] == 2
  assert any(e["event"] == "reorder_conflict_retry" and e["op"] == "task.update" for e in logs)
  assert await list_state(client, list_id) == [("C", 0), ("A", 1), ("B", 2)]


@pytest.mark.anyio
@pytest.mark.parametrize("make_error", [_conflict, _locked])
async def test_repeated_conflict_surfaces_as_retryable_409(client: AsyncClient, monkeypatch: pytest.MonkeyPatch, make_error) -> None:
  list_id, tasks = await _setup(client)
  calls = _flaky_bump(monkeypatch, 2, make_error)

  with capture_logs() as logs:
    res = await client.patch(f"/tasks/{tasks[2]['id']}", json={"position": 0})
  assert res.status_code == 409, res.text
  assert res.json()["retryable"] is True
  assert calls["n"] == 2
  assert any(e["event"] == "reorder_conflict_exhausted" for e in logs)
  # rolled back: nothing moved
  assert await list_state(client, list_id) == [("A", 0), ("B", 1), ("C", 2)]


@pytest.mark.anyio
async def test_unexpected_error_rolls_back_without_retry(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  list_id, tasks = await _setup(client)
  calls = _flaky_bump(monkeypatch, 5, lambda: RuntimeError("boom"))

  with pytest.raises(RuntimeError):
    await client.patch(f"/tasks/{tasks[0]['id']}", json={"position": 2})
  assert calls["n"] == 1

  monkeypatch.undo()
  assert await list_state(client, list_id) == [("A", 0), ("B", 1), ("C", 2)]


@pytest.mark.anyio
async def test_delete_retries_on_conflict(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
  list_id, tasks = await _setup(client)
  _flaky_bump(monkeypatch, 1, _conflict)
  res = await client.delete(f"/tasks/{tasks[0]['id']}")
  assert res.status_code == 200, res.text
  assert res.json()["deleted"] is True
  assert await list_state(client, list_id) == [("B", 0), ("C", 1)]
