"""Template file watcher.

Polls the templates directory for ``*.mjml`` changes and triggers a
pipeline run once the directory has been quiet for the debounce period.
A trigger that arrives while a run is active is dropped, not queued.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from mailqa_core.types.common import Trigger
from mailqa_agents.change_analyzer import ChangeEvent, ChangeKind

from mailqa_runner.orchestrator import Pipeline, PipelineResult

logger = logging.getLogger(__name__)

TEMPLATE_GLOB = "*.mjml"
DEFAULT_DEBOUNCE = 2.0
DEFAULT_INTERVAL = 0.5


def snapshot(directory: Path) -> dict[str, float]:
    """Return the modification time of every template in a directory.

    Args:
        directory: Templates directory.

    Returns:
        Mapping of template name (file stem) to mtime. Empty if the
        directory does not exist.
    """
    if not directory.is_dir():
        return {}
    result: dict[str, float] = {}
    for path in directory.glob(TEMPLATE_GLOB):
        try:
            result[path.stem] = path.stat().st_mtime
        except FileNotFoundError:
            # Removed between glob and stat
            continue
    return result


def detect_changes(
    directory: Path, previous: dict[str, float], current: dict[str, float]
) -> list[ChangeEvent]:
    """Compare two snapshots.

    Returns:
        Change events ordered by template name.
    """
    events: list[ChangeEvent] = []
    for name in sorted(set(previous) | set(current)):
        path = directory / f"{name}.mjml"
        if name not in previous:
            events.append(ChangeEvent(ChangeKind.CREATED, name, path))
        elif name not in current:
            events.append(ChangeEvent(ChangeKind.DELETED, name, path))
        elif previous[name] != current[name]:
            events.append(ChangeEvent(ChangeKind.MODIFIED, name, path))
    return events


def _merge(pending: dict[str, ChangeEvent], event: ChangeEvent) -> None:
    earlier = pending.get(event.template)
    if earlier is None:
        pending[event.template] = event
    elif earlier.kind == ChangeKind.CREATED and event.kind == ChangeKind.DELETED:
        # Created and removed within one debounce window
        del pending[event.template]
    elif earlier.kind == ChangeKind.CREATED:
        return
    else:
        pending[event.template] = event


class TemplateWatcher:
    """Debounced polling watcher that triggers pipeline runs.

    Args:
        pipeline: Pipeline to run on changes.
        directory: Templates directory. Defaults to the pipeline's.
        interval: Seconds between directory scans.
        debounce: Quiet period after the last change before a run starts.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        directory: Path | None = None,
        interval: float = DEFAULT_INTERVAL,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        self._pipeline = pipeline
        self._directory = Path(directory or pipeline.config.templates_dir)
        self._interval = interval
        self._debounce = debounce
        self._snapshot = snapshot(self._directory)
        self._pending: dict[str, ChangeEvent] = {}
        self._last_change: float | None = None
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> list[ChangeEvent]:
        """Return changes waiting for the debounce period to elapse."""
        return list(self._pending.values())

    @property
    def is_running(self) -> bool:
        """Return True while the polling task is active."""
        return self._running

    def scan(self, now: float | None = None) -> list[ChangeEvent]:
        """Scan the directory once and queue any changes.

        Args:
            now: Monotonic timestamp of the scan. Defaults to the current time.

        Returns:
            Changes found by this scan.
        """
        current = snapshot(self._directory)
        events = detect_changes(self._directory, self._snapshot, current)
        self._snapshot = current
        if events:
            for event in events:
                logger.info("Template %s %s", event.template, event.kind.value)
                _merge(self._pending, event)
            self._last_change = time.monotonic() if now is None else now
        return events

    async def poll(self, now: float | None = None) -> PipelineResult | None:
        """Scan once, and trigger a run if the debounce period has elapsed.

        Args:
            now: Monotonic timestamp of the poll. Defaults to the current time.

        Returns:
            The run result if a run was triggered, otherwise None.
        """
        now = time.monotonic() if now is None else now
        self.scan(now)
        if not self._pending or self._last_change is None:
            return None
        if now - self._last_change < self._debounce:
            return None

        events = list(self._pending.values())
        self._pending.clear()
        self._last_change = None
        logger.info("Triggering run for %d template change(s)", len(events))
        result = await self._pipeline.run(Trigger.FILE_WATCH, events=events)
        if result.status == "skipped":
            logger.info("Change trigger skipped: %s", result.reason)
        return result

    async def start(self) -> None:
        """Begin polling in a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(
            "Watching %s for template changes (debounce %.1fs)", self._directory, self._debounce
        )

    async def stop(self) -> None:
        """Stop polling. Safe to call when not running."""
        if not self._running:
            return

        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def run_forever(self) -> None:
        """Poll until cancelled."""
        self._running = True
        try:
            await self._poll_loop()
        finally:
            self._running = False

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll()
            except OSError:
                logger.warning("Error scanning %s", self._directory, exc_info=True)

            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
