from __future__ import annotations

from typing import Any

import httpx

DEFAULT_TIMEOUT_SECONDS = 10.0


class ApiError(RuntimeError):
  def __init__(self, *, status_code: int, message: str, retryable: bool = False) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.message = message
    self.retryable = retryable


def _extract_error(r: httpx.Response) -> tuple[str, bool]:
  try:
    payload = r.json()
  except ValueError:
    return (r.text or "").strip()[:500] or f"HTTP {r.status_code}", False
  if isinstance(payload, dict):
    detail = payload.get("detail")
    msg = detail if isinstance(detail, str) else (str(detail) if detail else f"HTTP {r.status_code}")
    return msg, bool(payload.get("retryable"))
  return f"HTTP {r.status_code}", False


class BoardApiClient:
  """
  Thin async wrapper over the board HTTP API.

  Pass ``client`` to reuse an existing ``httpx.AsyncClient`` (and its cookies);
  otherwise one is created for ``base_url`` and closed by ``aclose``.
  """

  def __init__(
    self,
    base_url: str = "http://localhost:8000",
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.AsyncClient | None = None,
  ) -> None:
    self._owns_client = client is None
    self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)
    self.timeout = timeout

  async def __aenter__(self) -> BoardApiClient:
    return self

  async def __aexit__(self, *exc: object) -> None:
    await self.aclose()

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()

  async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
    r = await self._client.request(method, path, timeout=self.timeout, **kwargs)
    if r.status_code >= 400:
      msg, retryable = _extract_error(r)
      raise ApiError(status_code=r.status_code, message=msg, retryable=retryable)
    if r.status_code == 204 or not r.content:
      return None
    try:
      return r.json()
    except ValueError as exc:
      raise ApiError(status_code=r.status_code, message=f"Invalid JSON response for {method} {path}") from exc

  async def login(self, email: str, password: str) -> dict[str, Any]:
    return await self._request_json("POST", "/auth/login", json={"email": email, "password": password})

  async def fetch_board(self, board_id: str) -> dict[str, Any]:
    return await self._request_json("GET", f"/boards/{board_id}")

  async def create_task(self, list_id: str, title: str, **fields: Any) -> dict[str, Any]:
    return await self._request_json("POST", f"/lists/{list_id}/tasks", json={"title": title, **fields})

  async def update_task(self, task_id: str, **fields: Any) -> dict[str, Any]:
    return await self._request_json("PATCH", f"/tasks/{task_id}", json=fields)

  async def delete_task(self, task_id: str) -> dict[str, Any]:
    return await self._request_json("DELETE", f"/tasks/{task_id}")

  async def update_list(self, list_id: str, **fields: Any) -> dict[str, Any]:
    return await self._request_json("PATCH", f"/lists/{list_id}", json=fields)
