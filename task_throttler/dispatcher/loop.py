"""
Throttled dispatch loop.

The loop pops jobs off the durable queue one at a time and hands each job
to its user's lane. A lane waits until its user is clear of the minimum
spacing and then triggers the task action, one job after another in queue
order. Lanes for different users wait independently, so a short backlog
for one user does not delay anybody else.
"""

import asyncio
import logging
from collections import deque

from task_throttler.config import get_settings
from task_throttler.constants import SPAN_EXECUTE_TASK, DispatchOutcome, DispatchState
from task_throttler.dispatcher.actions import TaskAction, TaskLogAction
from task_throttler.dispatcher.clock import Clock, MonotonicClock
from task_throttler.dispatcher.throttle import ThrottlingState
from task_throttler.errors import ActionFailure, MalformedJob, QueueUnavailable
from task_throttler.observability.metrics import get_metrics
from task_throttler.observability.tracing import get_tracer
from task_throttler.queue.base import JobQueue
from task_throttler.types.job import Job, NoJobAvailable

logger = logging.getLogger(__name__)


class DispatchLoop:
    """
    Single consumer of the durable queue.

    Suspension points:
    - the blocking ``dequeue`` in ``run_once``
    - the throttling sleep inside a user's lane

    Every error raised while handling one job is logged and swallowed so
    the next job is still dispatched. Jobs are never retried or put back:
    by the time the loop sees a job it is already gone from the queue.

    Jobs taken off the queue but not yet dispatched are lost if the
    process dies, so the loop holds as few as it can:
    - at most ``max_in_flight`` in total
    - at most ``max_user_backlog`` per user; while any user's lane is full
      the loop stops dequeuing until that lane dispatches a job

    Each instance owns a fresh ``ThrottlingState`` and is meant to be
    started once. Nothing about past dispatches survives the instance.
    """

    def __init__(
        self,
        queue: JobQueue,
        action: TaskAction | None = None,
        clock: Clock | None = None,
        min_spacing: float | None = None,
        dequeue_timeout: float | None = None,
        max_in_flight: int | None = None,
        max_user_backlog: int | None = None,
        drain_timeout: float | None = None,
    ):
        """
        Initialize the dispatch loop.

        Args:
            queue: Queue to consume from.
            action: Task run for each released job. Defaults to the task log.
            clock: Time source. Defaults to the monotonic clock.
            min_spacing: Seconds between two dispatches for one user.
            dequeue_timeout: Seconds to block on an empty queue.
            max_in_flight: Dequeued jobs that may wait in lanes at once.
            max_user_backlog: Dequeued jobs that may wait in one user's lane.
            drain_timeout: Seconds a draining stop waits for the lanes
                before dropping what is left.
        """
        settings = get_settings()

        self.queue = queue
        self.action = action or TaskLogAction(settings.task_log_path)
        self.clock = clock or MonotonicClock()
        self.throttle = ThrottlingState(
            settings.min_spacing_seconds if min_spacing is None else min_spacing
        )
        self.dequeue_timeout = (
            settings.dequeue_timeout_seconds if dequeue_timeout is None else dequeue_timeout
        )
        self.max_in_flight = (
            settings.max_in_flight_jobs if max_in_flight is None else max_in_flight
        )
        self.max_user_backlog = (
            settings.max_user_backlog if max_user_backlog is None else max_user_backlog
        )
        self.drain_timeout = (
            settings.shutdown_drain_timeout_seconds if drain_timeout is None else drain_timeout
        )

        if self.max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        if self.max_user_backlog < 1:
            raise ValueError("max_user_backlog must be at least 1")

        self._slots = asyncio.Semaphore(self.max_in_flight)
        self._lane_room = asyncio.Event()
        self._pending: dict[str, deque[Job]] = {}
        self._lanes: dict[str, asyncio.Task] = {}
        self._running = False
        self._stop_requested = False
        self._abandoned = False
        self._stopped = False
        self._drain_on_stop = True
        self._metrics = get_metrics()

    @property
    def state(self) -> DispatchState:
        """IDLE with no job in hand, DISPATCHING while any lane is active."""
        if self._stopped:
            return DispatchState.STOPPED
        if self._lanes:
            return DispatchState.DISPATCHING
        return DispatchState.IDLE

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        """Number of dequeued jobs whose dispatch has not finished."""
        return sum(len(pending) for pending in self._pending.values())

    async def start(self) -> None:
        """Run until ``stop`` is called."""
        logger.info(
            "Dispatch loop starting",
            extra={
                "min_spacing": self.throttle.min_spacing,
                "dequeue_timeout": self.dequeue_timeout,
                "max_in_flight": self.max_in_flight,
                "max_user_backlog": self.max_user_backlog,
            },
        )

        self._running = not self._stop_requested

        while self._running:
            await self.run_once()

        if self._drain_on_stop:
            if self._lanes:
                logger.info(f"Waiting for {len(self._lanes)} lanes to drain")
            if not await self.drain(self.drain_timeout):
                logger.warning(f"Lanes did not drain within {self.drain_timeout}s")
                await self.abandon()
        else:
            await self.abandon()

        self._stopped = True
        logger.info("Dispatch loop stopped")

    async def stop(self, drain: bool = True) -> None:
        """
        Stop dequeuing.

        Args:
            drain: Dispatch the jobs already taken off the queue, for up to
                ``drain_timeout`` seconds, before returning from ``start``.
                When False the lanes are cancelled before this returns, so
                no further action runs and their jobs are dropped.
        """
        logger.info("Dispatch loop stopping", extra={"drain": drain})
        self._drain_on_stop = drain
        self._stop_requested = True
        self._running = False
        self._lane_room.set()

        if not drain:
            await self.abandon()

    async def run_once(self) -> DispatchOutcome:
        """
        Wait for one job and hand it to its user's lane.

        Returns:
            What happened during the iteration.
        """
        await self._wait_for_lane_room()
        await self._slots.acquire()

        if self._stop_requested:
            self._slots.release()
            return DispatchOutcome.IDLE

        try:
            job = await self.queue.dequeue(self.dequeue_timeout)
        except MalformedJob as e:
            self._slots.release()
            logger.error("Discarding malformed job", extra={"reason": e.reason})
            self._metrics.record_job_dispatched("failed")
            return DispatchOutcome.FAILED
        except QueueUnavailable as e:
            self._slots.release()
            logger.error(f"Error processing queue: {e}")
            await self.clock.sleep(self.dequeue_timeout)
            return DispatchOutcome.QUEUE_UNAVAILABLE
        except Exception as e:
            self._slots.release()
            logger.exception(f"Error processing queue: {e}")
            await self.clock.sleep(self.dequeue_timeout)
            return DispatchOutcome.FAILED

        if isinstance(job, NoJobAvailable):
            self._slots.release()
            logger.debug("Dequeue timed out with an empty queue")
            self._metrics.record_dequeue_timeout()
            return DispatchOutcome.IDLE

        if self._abandoned:
            # Popped while the lanes were being cancelled.
            self._slots.release()
            logger.warning(
                f"Dropped job {job.job_id} dequeued during stop",
                extra={"job_id": job.job_id, "user_id": job.user_id},
            )
            self._metrics.record_job_dispatched("failed")
            return DispatchOutcome.FAILED

        self._route(job)
        return DispatchOutcome.ACCEPTED

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Wait until every dequeued job has been dispatched.

        Args:
            timeout: Seconds to wait, measured on the loop's clock. None
                waits for as long as it takes.

        Returns:
            False if the timeout passed with lanes still holding jobs.
        """
        timer = asyncio.create_task(self.clock.sleep(timeout)) if timeout is not None else None

        try:
            while self._lanes:
                waiting = [*self._lanes.values()]
                if timer is not None:
                    waiting.append(timer)
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
                if timer in done:
                    return not self._lanes
        finally:
            if timer is not None:
                timer.cancel()

        return True

    async def abandon(self) -> None:
        """Cancel every lane, dropping the jobs still waiting in them."""
        self._abandoned = True
        dropped = [job.job_id for pending in self._pending.values() for job in pending]
        lanes = list(self._lanes.values())
        for lane in lanes:
            lane.cancel()
        await asyncio.gather(*lanes, return_exceptions=True)

        if dropped:
            logger.warning(
                f"Dropped {len(dropped)} dequeued jobs",
                extra={"job_ids": dropped},
            )

    async def _wait_for_lane_room(self) -> None:
        """Block while some user's lane already holds its full backlog."""
        while not self._stop_requested and any(
            len(pending) >= self.max_user_backlog for pending in self._pending.values()
        ):
            self._lane_room.clear()
            await self._lane_room.wait()

    def _route(self, job: Job) -> None:
        """Append a job to its user's lane, starting the lane if needed."""
        pending = self._pending.get(job.user_id)
        if pending is None:
            pending = self._pending[job.user_id] = deque()
            self._lanes[job.user_id] = asyncio.create_task(
                self._run_lane(job.user_id, pending),
                name=f"dispatch-lane:{job.user_id}",
            )
        pending.append(job)

    async def _run_lane(self, user_id: str, pending: deque[Job]) -> None:
        """Dispatch one user's jobs in queue order until none are left."""
        try:
            while pending:
                # The job stays at the head until dispatched.
                job = pending[0]
                try:
                    await self._dispatch(job)
                except Exception as e:
                    logger.exception(
                        f"Error processing job: {e}",
                        extra={"job_id": job.job_id, "user_id": job.user_id},
                    )
                    self._metrics.record_job_dispatched("failed")
                else:
                    self._metrics.record_job_dispatched("succeeded")
                finally:
                    pending.popleft()
                    self._slots.release()
                    self._lane_room.set()
        finally:
            # Jobs dropped by a cancelled lane give their slots back.
            for _ in pending:
                self._slots.release()
            pending.clear()
            self._pending.pop(user_id, None)
            self._lanes.pop(user_id, None)
            self._lane_room.set()

    async def _dispatch(self, job: Job) -> None:
        """
        Wait out the user's spacing, record the dispatch and run the action.

        The dispatch is recorded before the action runs, so a failing
        action still counts towards the user's spacing.
        """
        waited = 0.0
        # Re-check after waking: a sleep may return marginally early.
        while (wait := self.throttle.time_to_wait(job.user_id, self.clock.now())) > 0:
            logger.debug(
                "Throttling job",
                extra={"job_id": job.job_id, "user_id": job.user_id, "wait": wait},
            )
            await self.clock.sleep(wait)
            waited += wait

        self._metrics.observe_throttle_wait(waited)
        self.throttle.record_dispatch(job.user_id, self.clock.now())

        with get_tracer().start_as_current_span(SPAN_EXECUTE_TASK) as span:
            span.set_attribute("job_id", job.job_id)
            span.set_attribute("user_id", job.user_id)

            try:
                await self.action(job.user_id)
            except ActionFailure:
                raise
            except Exception as e:
                raise ActionFailure(job.user_id, e) from e

        logger.info(
            f"Processed job {job.job_id} for user {job.user_id}",
            extra={"job_id": job.job_id, "user_id": job.user_id},
        )
