from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from typing import Any

import sentry_sdk

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


class RunContextFilter(logging.Filter):
    """Inject run metadata from ContextVars into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - formatting only
        context = _log_context.get({})
        record.run_id = context.get("run_id")
        record.command = context.get("command")
        return True


def push_run_context(run_id: str, command: str) -> Token:
    sentry_sdk.set_tag("run_id", run_id)
    sentry_sdk.set_tag("command", command)
    return _log_context.set({"run_id": run_id, "command": command})


def pop_run_context(token: Token) -> None:
    _log_context.reset(token)


def current_run_id() -> str | None:
    return _log_context.get({}).get("run_id")


def init_error_reporting(dsn: str | None) -> bool:
    if not dsn:
        return False
    sentry_sdk.init(dsn=dsn, traces_sample_rate=0.0)
    return True


__all__ = [
    "RunContextFilter",
    "current_run_id",
    "init_error_reporting",
    "pop_run_context",
    "push_run_context",
]
