from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class OrderingError(Exception):
  status_code = status.HTTP_400_BAD_REQUEST

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class NotFound(OrderingError):
  status_code = status.HTTP_404_NOT_FOUND


class AccessDenied(OrderingError):
  status_code = status.HTTP_403_FORBIDDEN


class ConflictRetryable(OrderingError):
  """Concurrent modification of a container; safe to re-fetch and try again."""

  status_code = status.HTTP_409_CONFLICT


def register_exception_handlers(app: FastAPI) -> None:
  @app.exception_handler(OrderingError)
  async def _ordering_error_handler(_: Request, exc: OrderingError) -> JSONResponse:
    content: dict = {"detail": exc.message}
    if isinstance(exc, ConflictRetryable):
      content["retryable"] = True
    return JSONResponse(status_code=exc.status_code, content=content)
