"""
Background Task Tracker for Agent Core side effects.

Runs fire-and-forget work triggered by rules (LLM request streams, tool
execution, outbound notifications) while keeping track of every unit of work
until it settles.

Key Features:
- Work starts immediately; the caller never waits for it
- Bounded set of tracked tasks prevents unbounded growth under load
- Failures are logged and counted, never propagated to the caller
- ``drain()`` awaits all tracked work as a synchronization barrier
  (used by tests and graceful shutdown)

This replaces bare asyncio.create_task calls which:
- Can lose errors silently
- Can be garbage collected while still pending
- Cannot be awaited together on shutdown
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID, uuid4

from .config import AgentCoreConfig
from .domain.errors import BackgroundCapacityError

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    """Status of a background task."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class BackgroundTask:
    """A unit of background work being tracked."""

    id: UUID = field(default_factory=uuid4)
    name: str = ""
    status: TaskStatus = TaskStatus.RUNNING
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    error: Optional[str] = None


@dataclass
class TrackerMetrics:
    """Metrics for monitoring background work."""

    tasks_submitted: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_dropped: int = 0  # Dropped because the tracked set was full
    current_tasks: int = 0
    peak_tasks: int = 0


class BackgroundTaskTracker:
    """Tracks fire-and-forget tasks until they settle.

    Usage:
        tracker = BackgroundTaskTracker.from_config(config)

        # Schedule work (returns immediately)
        tracker.background(lambda: notify_slack(payload))

        # On shutdown or at the end of a test
        await tracker.drain()

    Attributes:
        max_tasks: Maximum number of tasks tracked at once
        drain_timeout: Timeout used by drain() and stop() when none is given
    """

    def __init__(self, max_tasks: int = 256, drain_timeout: Optional[float] = 30.0):
        """Initialize the tracker.

        Args:
            max_tasks: Maximum tasks tracked at once
            drain_timeout: Default drain timeout in seconds (None waits forever)
        """
        self.max_tasks = max_tasks
        self.drain_timeout = drain_timeout
        self._tasks: dict[asyncio.Task, BackgroundTask] = {}
        self._metrics = TrackerMetrics()

    @classmethod
    def from_config(cls, config: AgentCoreConfig) -> BackgroundTaskTracker:
        """Create a tracker sized and timed by ``config``."""
        return cls(
            max_tasks=config.max_background_tasks,
            drain_timeout=config.drain_timeout_seconds,
        )

    @property
    def metrics(self) -> TrackerMetrics:
        """Get current metrics."""
        self._metrics.current_tasks = len(self._tasks)
        return self._metrics

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def background(
        self,
        fn: Callable[[], Awaitable[Any]],
        name: str = "",
    ) -> Optional[UUID]:
        """Start ``fn`` now and track its result until it settles.

        Args:
            fn: Zero-argument callable returning an awaitable
            name: Human-readable task name for logging

        Returns:
            Task UUID if tracked, None if the work already settled

        Raises:
            BackgroundCapacityError: If the tracked set is full; the work is
                not started
        """
        record = BackgroundTask(name=name or getattr(fn, "__name__", "background"))

        if len(self._tasks) >= self.max_tasks:
            self._metrics.tasks_dropped += 1
            logger.error(
                f"Background capacity reached ({self.max_tasks}) - dropped task: {record.name}"
            )
            raise BackgroundCapacityError(
                f"Background capacity reached ({self.max_tasks}), dropped task: {record.name}"
            )

        self._metrics.tasks_submitted += 1

        try:
            awaitable = fn()
        except Exception as e:
            self._record_failure(record, e)
            return None

        if not inspect.isawaitable(awaitable):
            record.status = TaskStatus.COMPLETED
            record.completed_at = time.time()
            self._metrics.tasks_completed += 1
            return None

        task = asyncio.ensure_future(self._run(record, awaitable))
        self._tasks[task] = record
        self._metrics.peak_tasks = max(self._metrics.peak_tasks, len(self._tasks))
        task.add_done_callback(self._tasks.pop)
        logger.debug(f"Task {record.id} ({record.name}) started")
        return record.id

    def __call__(self, fn: Callable[[], Awaitable[Any]]) -> Optional[UUID]:
        """Allow the tracker itself to be passed as the ``background`` dependency."""
        return self.background(fn)

    async def _run(self, record: BackgroundTask, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except asyncio.CancelledError:
            record.status = TaskStatus.CANCELLED
            record.completed_at = time.time()
            logger.debug(f"Task {record.id} ({record.name}) cancelled")
            raise
        except Exception as e:
            self._record_failure(record, e)
        else:
            record.status = TaskStatus.COMPLETED
            record.completed_at = time.time()
            self._metrics.tasks_completed += 1
            logger.debug(f"Task {record.id} ({record.name}) completed")

    def _record_failure(self, record: BackgroundTask, error: Exception) -> None:
        record.status = TaskStatus.FAILED
        record.error = str(error)
        record.completed_at = time.time()
        self._metrics.tasks_failed += 1
        logger.error(
            f"Background task {record.id} ({record.name}) failed: {error}",
            exc_info=error,
        )

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until no tracked task remains.

        Tasks spawned while draining are awaited too.

        Args:
            timeout: Maximum time to wait in seconds (defaults to drain_timeout)

        Returns:
            True if every task settled, False on timeout
        """
        if timeout is None:
            timeout = self.drain_timeout
        deadline = None if timeout is None else time.monotonic() + timeout

        while self._tasks:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                logger.warning(f"Drain timeout: {len(self._tasks)} tasks remaining")
                return False
            await asyncio.wait(list(self._tasks), timeout=remaining)

        return True

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Drain gracefully, then cancel whatever is still running.

        Args:
            timeout: Maximum time to wait for tasks to complete (defaults to
                drain_timeout)
        """
        if not await self.drain(timeout=timeout):
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        logger.info("Background task tracker stopped")
