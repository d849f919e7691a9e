"""Structured JSON logging for the extractor.

Every event is one JSON object on the ``extractor`` logger. Fields come from
three layers, later layers winning: process-wide fields set once at start-up,
the scoped fields of the current task, and the call's own keyword fields.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping

LOGGER_NAME = "extractor"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

_process_fields: dict[str, Any] = {}
# Tasks started by asyncio.gather copy this, so items in one batch never share scope.
_scoped_fields: ContextVar[Mapping[str, Any]] = ContextVar("extractor_log_scope", default={})
_ready = False


def _present(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


def configure_logging(level: int | None = None) -> None:
    """Install the root handler once; ``EXTRACTOR_LOG_LEVEL`` picks the level when none is given."""

    global _ready
    if _ready:
        return
    if level is None:
        level = getattr(logging, os.getenv("EXTRACTOR_LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    _ready = True


def set_global_context(**fields: Any) -> None:
    """Fields stamped on every event for the rest of the process (``None`` values are ignored)."""

    _process_fields.update(_present(fields))


@contextmanager
def logging_context(**fields: Any) -> Iterator[None]:
    """Scope extra fields to the current task for the duration of the block."""

    token = _scoped_fields.set({**_scoped_fields.get(), **_present(fields)})
    try:
        yield
    finally:
        _scoped_fields.reset(token)


def current_context() -> dict[str, Any]:
    return {**_process_fields, **_scoped_fields.get()}


def jlog(level: str, /, **fields: Any) -> None:
    payload = {"ts": datetime.now(timezone.utc).isoformat(), **current_context(), **fields}
    logger = logging.getLogger(LOGGER_NAME)
    logger.log(
        logging.getLevelName(level.upper()),
        json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str),
    )


def itemlog(event: str, *, url: str, level: str = "info", **kw: Any) -> None:
    """Event about one worklist row; ``url`` is its stable key."""

    jlog(level, event=event, url=url, **kw)


__all__ = [
    "LOGGER_NAME",
    "configure_logging",
    "current_context",
    "itemlog",
    "jlog",
    "logging_context",
    "set_global_context",
]
