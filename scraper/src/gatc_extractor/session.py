"""Session budget and the hand-off to an external restart trigger."""

from __future__ import annotations

import os
import time
import uuid
from collections.abc import Callable
from typing import Protocol

import requests

from .logging import jlog

REASON_BLOCKED = "blocked"
REASON_TIME_BUDGET = "time_budget"
REASON_MORE_ROWS = "more_rows"
REASON_STORE_ERROR = "store_error"

GITHUB_API = "https://api.github.com"
DEFAULT_EVENT_TYPE = "unified_agent_trigger"


class SessionAborted(RuntimeError):
    """Raised to stop scheduling further batches; the reason is handed to the restart trigger."""

    def __init__(self, reason: str, detail: str | None = None) -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class ContinuationChannel(Protocol):
    def emit(self, session_id: str, reason: str) -> bool: ...


class LoggingChannel:
    """Used when no restart infrastructure is configured."""

    def emit(self, session_id: str, reason: str) -> bool:
        jlog("info", event="continuation_skipped", session_id=session_id, reason=reason)
        return False


class GitHubDispatchChannel:
    """Fires a ``repository_dispatch`` event; one shot, never retried."""

    def __init__(
        self,
        repo: str,
        token: str,
        *,
        event_type: str = DEFAULT_EVENT_TYPE,
        http: requests.Session | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        self.repo = repo
        self.token = token
        self.event_type = event_type
        self.http = http or requests.Session()
        self.timeout_s = timeout_s

    @property
    def endpoint(self) -> str:
        return f"{GITHUB_API}/repos/{self.repo}/dispatches"

    def emit(self, session_id: str, reason: str) -> bool:
        payload = {"event_type": self.event_type, "client_payload": {"session_id": session_id, "reason": reason}}
        headers = {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "gatc-extractor",
        }
        try:
            resp = self.http.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout_s)
        except requests.RequestException as exc:
            jlog("error", event="continuation_failed", session_id=session_id, reason=reason, error=str(exc))
            return False
        if resp.status_code >= 300:
            jlog(
                "error",
                event="continuation_failed",
                session_id=session_id,
                reason=reason,
                status=resp.status_code,
                body=(resp.text or "")[:200],
            )
            return False
        jlog("info", event="continuation_sent", session_id=session_id, reason=reason, repo=self.repo)
        return True


def channel_from_env(http: requests.Session | None = None) -> ContinuationChannel:
    repo = os.getenv("GITHUB_REPOSITORY")
    token = os.getenv("GH_TOKEN")
    if not repo or not token:
        return LoggingChannel()
    return GitHubDispatchChannel(
        repo,
        token,
        event_type=os.getenv("CONTINUATION_EVENT", DEFAULT_EVENT_TYPE),
        http=http,
    )


class SessionGovernor:
    """Tracks the wall-clock budget and emits the continuation signal at most once."""

    def __init__(
        self,
        max_runtime_s: float,
        channel: ContinuationChannel,
        *,
        session_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_runtime_s = max_runtime_s
        self.channel = channel
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._clock = clock
        self._started = clock()
        self.handed_off: str | None = None

    @property
    def elapsed_s(self) -> float:
        return self._clock() - self._started

    def expired(self) -> bool:
        return self.elapsed_s >= self.max_runtime_s

    def check(self) -> None:
        if self.expired():
            jlog(
                "warning",
                event="session_budget_exhausted",
                session_id=self.session_id,
                elapsed_s=round(self.elapsed_s, 1),
                max_runtime_s=self.max_runtime_s,
            )
            raise SessionAborted(REASON_TIME_BUDGET)

    def hand_off(self, reason: str) -> bool:
        if self.handed_off is not None:
            return False
        self.handed_off = reason
        try:
            return self.channel.emit(self.session_id, reason)
        except Exception as exc:
            jlog("error", event="continuation_failed", session_id=self.session_id, reason=reason, error=str(exc))
            return False


__all__ = [
    "ContinuationChannel",
    "GitHubDispatchChannel",
    "LoggingChannel",
    "REASON_BLOCKED",
    "REASON_MORE_ROWS",
    "REASON_STORE_ERROR",
    "REASON_TIME_BUDGET",
    "SessionAborted",
    "SessionGovernor",
    "channel_from_env",
]
