from __future__ import annotations

import logging

import structlog

from taskboard.config import settings


def configure_logging() -> None:
  level = logging.getLevelName(settings.log_level.upper())
  if not isinstance(level, int):
    level = logging.INFO

  processors: list = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
  ]
  if settings.log_json:
    processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
  else:
    processors.append(structlog.dev.ConsoleRenderer())
  structlog.configure(
    processors=processors,
    wrapper_class=structlog.make_filtering_bound_logger(level),
    cache_logger_on_first_use=True,
  )
