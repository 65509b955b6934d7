"""
Integration tests from submission to dispatch.

Tasks are submitted over HTTP into the in-memory queue and dispatched by a
DispatchLoop on a virtual clock.
"""

import pytest
from httpx import AsyncClient

from task_throttler.constants import DispatchOutcome
from task_throttler.dispatcher.actions import TaskLogAction
from task_throttler.dispatcher.loop import DispatchLoop

TASK_URL = "/api/v1/task"


class TestSubmitAndDispatch:
    """End-to-end admission and dispatch."""

    @pytest.mark.asyncio
    async def test_submitted_tasks_are_spaced_per_user(self, client: AsyncClient, queue, action, clock):
        """Test A, B, A submitted together: B is not held up behind A."""
        for user in ("user-a", "user-b", "user-a"):
            response = await client.post(TASK_URL, json={"user_id": user})
            assert response.status_code == 200

        loop = DispatchLoop(queue, action=action, clock=clock, min_spacing=1.0, dequeue_timeout=0.01)
        outcomes = [await loop.run_once() for _ in range(4)]
        await clock.advance(1.0)
        await loop.drain()

        assert outcomes == [DispatchOutcome.ACCEPTED] * 3 + [DispatchOutcome.IDLE]
        assert action.times_for("user-a") == [0.0, 1.0]
        assert action.times_for("user-b") == [0.0]

    @pytest.mark.asyncio
    async def test_rejected_submissions_never_dispatch(self, client: AsyncClient, queue, action, clock):
        await client.post(TASK_URL, json={"user_id": ""})
        await client.post(TASK_URL, json={"user_id": "user-1"})

        loop = DispatchLoop(queue, action=action, clock=clock, min_spacing=1.0, dequeue_timeout=0.01)
        outcomes = [await loop.run_once() for _ in range(2)]
        await clock.settle()

        assert outcomes == [DispatchOutcome.ACCEPTED, DispatchOutcome.IDLE]
        assert action.calls == [("user-1", 0.0)]

    @pytest.mark.asyncio
    async def test_task_log_written(self, client: AsyncClient, queue, clock, tmp_path):
        """Test the default action appends a completion line per dispatched task."""
        log_path = tmp_path / "task_log.txt"
        await client.post(TASK_URL, json={"user_id": "user-1"})
        await client.post(TASK_URL, json={"user_id": "user-2"})

        loop = DispatchLoop(
            queue,
            action=TaskLogAction(log_path),
            clock=clock,
            min_spacing=1.0,
            dequeue_timeout=0.01,
        )
        await loop.run_once()
        await loop.run_once()
        await loop.drain()

        lines = sorted(log_path.read_text(encoding="utf-8").splitlines())
        assert [line.split("-task completed at-")[0] for line in lines] == ["user-1", "user-2"]
