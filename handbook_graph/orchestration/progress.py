"""
Progress reporting for long-running orchestration flows.

Decouples the orchestrator (producer of stage events) from whatever
renders them. LoggingProgressSink emits one JSON payload per accepted event
under the ``orchestration.progress`` logger, rate limited by
ProgressRateLimiter.
"""

from __future__ import annotations

import abc
import json
import logging
import threading
import time
from typing import Any, Dict, Optional

PROTOCOL_VERSION = 1


class ProgressRateLimiter:
    """
    Time and delta based limiter.

    An event passes when at least ``min_interval_ms`` elapsed since the last
    accepted event, or when ``completed`` moved by at least ``min_delta``
    units. The first event always passes.
    """

    def __init__(self, min_interval_ms: int, min_delta: int) -> None:
        self._min_interval_ms = max(0, min_interval_ms)
        self._min_delta = max(0, min_delta)
        self._last_accepted_at = 0
        self._last_completed: Optional[int] = None
        self._lock = threading.Lock()

    def try_acquire(self, now_ms: int, completed: int) -> bool:
        with self._lock:
            interval_ok = (now_ms - self._last_accepted_at) >= self._min_interval_ms
            delta_ok = self._last_completed is None or abs(completed - self._last_completed) >= self._min_delta
            if interval_ok or delta_ok:
                self._last_accepted_at = now_ms
                self._last_completed = completed
                return True
            return False


class ProgressSink(abc.ABC):
    """Receiver of stage events. Implementations must be cheap and non-blocking."""

    @abc.abstractmethod
    def begin_stage(self, stage_id: str, label: str, total_work: int = 0) -> None:
        ...

    @abc.abstractmethod
    def step(self, stage_id: str, completed: int, message: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        ...

    @abc.abstractmethod
    def end_stage_ok(self, stage_id: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        ...

    @abc.abstractmethod
    def end_stage_error(self, stage_id: str, error_summary: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        ...

    def is_cancelled(self) -> bool:
        return False


class NoOpProgressSink(ProgressSink):
    def begin_stage(self, stage_id: str, label: str, total_work: int = 0) -> None:
        pass

    def step(self, stage_id: str, completed: int, message: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        pass

    def end_stage_ok(self, stage_id: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        pass

    def end_stage_error(self, stage_id: str, error_summary: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        pass


class LoggingProgressSink(ProgressSink):
    """
    Emits structured progress payloads to the log::

        {"stageId": "plan", "label": "Generating plan", "completed": 1, "total": 3,
         "percent": 33, "message": "...", "attrs": {...}, "status": "running",
         "protocolVersion": 1}
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        min_interval_ms: int = 250,
        min_delta: int = 1,
    ) -> None:
        self._log = logger or logging.getLogger("orchestration.progress")
        self._limiter = ProgressRateLimiter(min_interval_ms, min_delta)
        self._totals: Dict[str, int] = {}
        self._completions: Dict[str, int] = {}
        self._labels: Dict[str, str] = {}

    def begin_stage(self, stage_id: str, label: str, total_work: int = 0) -> None:
        self._totals[stage_id] = max(0, total_work)
        self._completions[stage_id] = 0
        self._labels[stage_id] = label
        self._emit(stage_id, 0, "begin", None, "running")

    def step(self, stage_id: str, completed: int, message: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        if self._limiter.try_acquire(int(time.time() * 1000), completed):
            self._completions[stage_id] = completed
            self._emit(stage_id, completed, message, attrs, "running")

    def end_stage_ok(self, stage_id: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        total = self._totals.get(stage_id, self._completions.get(stage_id, 0))
        done = max(total, self._completions.get(stage_id, total))
        self._emit(stage_id, done, "end", attrs, "ok")

    def end_stage_error(self, stage_id: str, error_summary: str, attrs: Optional[Dict[str, Any]] = None) -> None:
        merged = dict(attrs or {})
        if error_summary:
            merged["error"] = error_summary
        self._emit(stage_id, self._completions.get(stage_id, 0), "error", merged, "error")

    def create_payload(
        self,
        stage_id: str,
        completed: int,
        message: str,
        attrs: Optional[Dict[str, Any]],
        status: str,
    ) -> Dict[str, Any]:
        total = max(0, self._totals.get(stage_id, 0))
        completed = max(0, min(completed, total) if total else completed)
        percent = min(100, round(completed * 100 / total)) if total else 0
        return {
            "stageId": stage_id,
            "label": self._labels.get(stage_id, stage_id),
            "completed": completed,
            "total": total,
            "percent": percent,
            "message": message,
            "attrs": attrs or {},
            "status": status,
            "protocolVersion": PROTOCOL_VERSION,
        }

    def _emit(
        self,
        stage_id: str,
        completed: int,
        message: str,
        attrs: Optional[Dict[str, Any]],
        status: str,
    ) -> None:
        payload = self.create_payload(stage_id, completed, message, attrs, status)
        self._log.info("[orchestration.progress] %s", json.dumps(payload, default=str, sort_keys=True))
