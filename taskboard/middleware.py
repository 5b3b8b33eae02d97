from __future__ import annotations

import uuid
from time import perf_counter
from typing import Awaitable, Callable

import structlog
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

logger = structlog.get_logger()

_SECURITY_HEADERS = {
  "X-Content-Type-Options": "nosniff",
  "X-Frame-Options": "DENY",
  "Referrer-Policy": "strict-origin-when-cross-origin",
  "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


async def request_context_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
  """Tag the request with an id, log its outcome and add security headers."""
  request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
  request.state.request_id = request_id

  structlog.contextvars.clear_contextvars()
  structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)

  start = perf_counter()
  try:
    response = await call_next(request)
  except Exception as exc:
    logger.exception("request_failed", error=str(exc), duration_ms=round((perf_counter() - start) * 1000.0, 2))
    raise

  logger.info("request_completed", status_code=response.status_code, duration_ms=round((perf_counter() - start) * 1000.0, 2))
  response.headers[REQUEST_ID_HEADER] = request_id
  for name, value in _SECURITY_HEADERS.items():
    response.headers.setdefault(name, value)
  return response
