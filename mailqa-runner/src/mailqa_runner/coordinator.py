"""Run coordination: the single-run guard, step tracking and log capture.

A RunCoordinator owns the "is a run active" flag. try_acquire() is a
non-blocking compare-and-swap: it either claims the coordinator for a new
run or returns None, so concurrent triggers are rejected and never queued.

While a run is active, a LogBuffer handler is attached to the mailqa
loggers. It keeps the last 200 records and turns ``[STEP:<name>]``
markers into the run's current step and progress.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from mailqa_core.errors import RunBusyError
from mailqa_core.types.common import RunId, Trigger

LOG_CAPACITY = 200

CAPTURED_LOGGERS = ("mailqa_core", "mailqa_testcase", "mailqa_agents", "mailqa_runner")

STEP_PROGRESS: dict[str, tuple[int, str]] = {
    "init": (0, "Initializing test pipeline..."),
    "compile": (10, "Compiling templates..."),
    "planner": (25, "Analyzing requirements..."),
    "analyzer": (50, "Detecting changes..."),
    "diff": (75, "Comparing templates..."),
    "tests": (85, "Running regression tests..."),
    "reporter": (90, "Generating report..."),
}

_STEP_RE = re.compile(r"\[STEP:(\w+)\]")


def step_marker(step: str) -> str:
    """Return the log marker for a pipeline step."""
    return f"[STEP:{step}]"


@dataclass(frozen=True)
class LogEntry:
    """One captured log record.

    Attributes:
        timestamp: ISO-8601 UTC time of the record.
        level: Logging level name.
        message: Formatted message.
        kind: Display kind: info, warning, error, success or step.
    """

    timestamp: str
    level: str
    message: str
    kind: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp,
            "level": self.level,
            "message": self.message,
            "type": self.kind,
        }

    def to_line(self) -> str:
        """Format for the run log file."""
        return f"{self.timestamp} {self.level} {self.message}"


def _kind(record: logging.LogRecord, message: str) -> str:
    if _STEP_RE.search(message):
        return "step"
    if record.levelno >= logging.ERROR:
        return "error"
    if record.levelno >= logging.WARNING:
        return "warning"
    if "complete" in message.lower():
        return "success"
    return "info"


class LogBuffer(logging.Handler):
    """Logging handler keeping the most recent records in a ring buffer.

    Args:
        capacity: Maximum number of records kept.
        on_step: Called with the step name whenever a step marker is logged.
    """

    def __init__(
        self,
        capacity: int = LOG_CAPACITY,
        on_step: Callable[[str], None] | None = None,
    ) -> None:
        super().__init__(level=logging.INFO)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._all: list[LogEntry] = []
        self._on_step = on_step

    def emit(self, record: logging.LogRecord) -> None:
        message = record.getMessage()
        entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            message=message,
            kind=_kind(record, message),
        )
        self._entries.append(entry)
        self._all.append(entry)
        match = _STEP_RE.search(message)
        if match is not None and self._on_step is not None:
            self._on_step(match.group(1))

    @property
    def entries(self) -> list[LogEntry]:
        """Return the buffered records, oldest first."""
        return list(self._entries)

    def lines(self) -> list[str]:
        """Return every record captured since the last clear, as log lines."""
        return [e.to_line() for e in self._all]

    def clear(self) -> None:
        """Drop all buffered records."""
        self._entries.clear()
        self._all.clear()


@dataclass
class ActiveRun:
    """State of the run in progress.

    Attributes:
        run_id: Run identifier.
        trigger: What started the run.
        templates: Selected template subset, or None for all.
        started_at: Run start time.
        step: Current pipeline step.
        step_description: Human-readable step description.
        progress: Progress percentage.
    """

    run_id: RunId
    trigger: Trigger
    templates: list[str] | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    step: str = "init"
    step_description: str = STEP_PROGRESS["init"][1]
    progress: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "runId": self.run_id.token,
            "trigger": self.trigger.value,
            "startedAt": self.started_at.isoformat(),
            "status": "running",
            "templates": self.templates if self.templates is not None else "all",
            "step": self.step,
            "stepDescription": self.step_description,
            "progress": self.progress,
        }


class RunCoordinator:
    """Guards against concurrent runs and tracks the active one.

    Instances are independent; the server and CLI each create one and
    inject it into the pipeline.

    Args:
        log_capacity: Number of log records kept for status queries.
    """

    def __init__(self, log_capacity: int = LOG_CAPACITY) -> None:
        self._guard = threading.Lock()
        self._active: ActiveRun | None = None
        self._last_result: dict[str, Any] | None = None
        self._buffer = LogBuffer(log_capacity, on_step=self._set_step)

    @property
    def is_running(self) -> bool:
        """Return True while a run holds the coordinator."""
        return self._active is not None

    @property
    def active(self) -> ActiveRun | None:
        """Return the active run, if any."""
        return self._active

    @property
    def last_result(self) -> dict[str, Any] | None:
        """Return the result of the most recent finished run."""
        return self._last_result

    @property
    def logs(self) -> LogBuffer:
        """Return the log buffer."""
        return self._buffer

    def try_acquire(
        self,
        run_id: RunId,
        trigger: Trigger,
        templates: list[str] | None = None,
    ) -> ActiveRun | None:
        """Claim the coordinator for a new run without blocking.

        Returns:
            The new ActiveRun, or None if another run is active.
        """
        if not self._guard.acquire(blocking=False):
            return None
        self._active = ActiveRun(run_id=run_id, trigger=trigger, templates=templates)
        self._buffer.clear()
        for name in CAPTURED_LOGGERS:
            logging.getLogger(name).addHandler(self._buffer)
        return self._active

    def acquire(
        self,
        run_id: RunId,
        trigger: Trigger,
        templates: list[str] | None = None,
    ) -> ActiveRun:
        """Claim the coordinator for a new run.

        Raises:
            RunBusyError: If another run is active.
        """
        active = self.try_acquire(run_id, trigger, templates)
        if active is None:
            raise RunBusyError("A test run is already in progress")
        return active

    def release(self, result: dict[str, Any]) -> None:
        """Finish the active run and record its result."""
        for name in CAPTURED_LOGGERS:
            logging.getLogger(name).removeHandler(self._buffer)
        self._last_result = result
        self._active = None
        self._guard.release()

    def status(self) -> dict[str, Any]:
        """Return the status payload served at /test-status."""
        return {
            "isRunning": self.is_running,
            "currentTest": self._active.to_dict() if self._active is not None else None,
            "lastResult": self._last_result,
            "logs": [e.to_dict() for e in self._buffer.entries],
        }

    def _set_step(self, step: str) -> None:
        if self._active is None:
            return
        progress, description = STEP_PROGRESS.get(step, (self._active.progress, step))
        self._active.step = step
        self._active.step_description = description
        self._active.progress = progress
