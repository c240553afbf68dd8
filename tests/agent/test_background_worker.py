"""
Tests for the background task tracker.

Tests cover:
    - Immediate start, tracking and completion
    - Failures logged and counted, never raised to the caller
    - Capacity limit refuses work with BackgroundCapacityError
    - Construction from AgentCoreConfig
    - drain() as a barrier, including tasks spawned while draining
    - stop() cancelling stragglers
"""

import asyncio
import logging

import pytest

from agentcore.background_worker import BackgroundTaskTracker
from agentcore.config import AgentCoreConfig
from agentcore.domain.errors import BackgroundCapacityError


class TestBackgroundTaskTracker:
    """Tests for BackgroundTaskTracker."""

    @pytest.mark.asyncio
    async def test_runs_and_counts_completion(self):
        tracker = BackgroundTaskTracker()
        done = []

        async def work():
            await asyncio.sleep(0)
            done.append(True)

        task_id = tracker.background(work, name="work")
        assert task_id is not None
        assert tracker.pending == 1

        assert await tracker.drain(timeout=1) is True
        assert done == [True]
        assert tracker.pending == 0
        assert tracker.metrics.tasks_submitted == 1
        assert tracker.metrics.tasks_completed == 1

    @pytest.mark.asyncio
    async def test_callable_alias(self):
        tracker = BackgroundTaskTracker()
        done = []

        async def work():
            done.append(True)

        tracker(work)
        await tracker.drain()
        assert done == [True]

    @pytest.mark.asyncio
    async def test_non_awaitable_result_completes_immediately(self):
        tracker = BackgroundTaskTracker()
        assert tracker.background(lambda: 42) is None
        assert tracker.pending == 0
        assert tracker.metrics.tasks_completed == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        tracker = BackgroundTaskTracker()

        async def broken():
            raise ValueError("nope")

        with caplog.at_level(logging.ERROR):
            tracker.background(broken, name="broken")
            assert await tracker.drain(timeout=1) is True

        assert tracker.metrics.tasks_failed == 1
        assert "broken" in caplog.text
        assert "nope" in caplog.text

    @pytest.mark.asyncio
    async def test_synchronous_failure_is_caught(self):
        tracker = BackgroundTaskTracker()

        def explode():
            raise RuntimeError("before await")

        assert tracker.background(explode) is None
        assert tracker.metrics.tasks_failed == 1

    @pytest.mark.asyncio
    async def test_refuses_work_when_full(self, caplog):
        tracker = BackgroundTaskTracker(max_tasks=1)
        gate = asyncio.Event()
        started = []

        async def wait_for_gate():
            started.append(True)
            await gate.wait()

        tracker.background(wait_for_gate)
        with caplog.at_level(logging.ERROR):
            with pytest.raises(BackgroundCapacityError, match="overflow"):
                tracker.background(wait_for_gate, name="overflow")

        assert started == [True]
        assert tracker.metrics.tasks_dropped == 1
        assert tracker.metrics.tasks_submitted == 1
        assert "overflow" in caplog.text

        gate.set()
        await tracker.drain(timeout=1)

    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks_spawned_while_draining(self):
        tracker = BackgroundTaskTracker()
        order = []

        async def child():
            await asyncio.sleep(0)
            order.append("child")

        async def parent():
            await asyncio.sleep(0)
            tracker.background(child)
            order.append("parent")

        tracker.background(parent)
        assert await tracker.drain(timeout=1) is True
        assert order == ["parent", "child"]
        assert tracker.metrics.peak_tasks >= 1

    @pytest.mark.asyncio
    async def test_drain_timeout_returns_false(self):
        tracker = BackgroundTaskTracker()
        gate = asyncio.Event()

        async def stuck():
            await gate.wait()

        tracker.background(stuck)
        assert await tracker.drain(timeout=0.01) is False
        gate.set()
        assert await tracker.drain(timeout=1) is True

    @pytest.mark.asyncio
    async def test_stop_cancels_stragglers(self):
        tracker = BackgroundTaskTracker()

        async def forever():
            await asyncio.Event().wait()

        tracker.background(forever)
        await tracker.stop(timeout=0.01)
        assert tracker.pending == 0

    def test_from_config(self):
        config = AgentCoreConfig(max_background_tasks=3, drain_timeout_seconds=1.5)
        tracker = BackgroundTaskTracker.from_config(config)
        assert tracker.max_tasks == 3
        assert tracker.drain_timeout == 1.5

    @pytest.mark.asyncio
    async def test_drain_defaults_to_configured_timeout(self):
        tracker = BackgroundTaskTracker(drain_timeout=0.01)
        gate = asyncio.Event()

        async def stuck():
            await gate.wait()

        tracker.background(stuck)
        assert await tracker.drain() is False
        await tracker.stop()
        assert tracker.pending == 0
