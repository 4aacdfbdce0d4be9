import asyncio
import logging
from typing import Optional, Set

from app.core.config import settings
from app.core.exceptions import EventValidationError, LeadScoringError
from app.models.scoring_job import ScoringJob
from app.services.event_queue import EventQueue
from app.services.event_validation import EventValidator
from app.services.lead_scoring import LeadScoringEngine

logger = logging.getLogger(__name__)


class ScoringWorkerPool:
    """Pull jobs from the :class:`EventQueue` and feed them to the engine.

    At most ``concurrency`` jobs run at once.  Each job is bounded by
    ``job_timeout``; a timeout counts as a failed attempt and the
    cancelled transaction rolls back, which is safe because delivery is
    idempotent.  Domain errors carry their own ``retryable`` flag, so a
    malformed payload is dead-lettered at once while a missing lead or
    rule goes through the normal backoff.
    """

    def __init__(
        self,
        queue: EventQueue,
        engine: LeadScoringEngine,
        concurrency: Optional[int] = None,
        job_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        self._queue = queue
        self._engine = engine
        self.concurrency = (
            settings.WORKER_CONCURRENCY if concurrency is None else concurrency
        )
        self.job_timeout = (
            settings.JOB_TIMEOUT_SECONDS if job_timeout is None else job_timeout
        )
        self.poll_interval = (
            settings.QUEUE_POLL_INTERVAL_SECONDS
            if poll_interval is None
            else poll_interval
        )
        self._tasks: Set[asyncio.Task] = set()
        self._runner: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._runner = asyncio.create_task(self._poll_loop())
        logger.info(
            "Scoring worker pool started (concurrency=%d, timeout=%.1fs)",
            self.concurrency,
            self.job_timeout,
        )

    async def stop(self) -> None:
        """Stop polling and let in-flight jobs finish."""
        if self._runner is None:
            return
        self._stopping.set()
        self._runner.cancel()
        try:
            await self._runner
        except asyncio.CancelledError:
            pass
        self._runner = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Scoring worker pool stopped")

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                claimed = await self.run_once(wait=False)
            except Exception:
                logger.error("Worker poll cycle failed", exc_info=True)
                claimed = 0
            if claimed == 0:
                try:
                    await asyncio.wait_for(
                        self._stopping.wait(), timeout=self.poll_interval
                    )
                except asyncio.TimeoutError:
                    pass

    async def run_once(self, wait: bool = True) -> int:
        """Claim as many jobs as there are free slots and start them.

        With *wait* the call returns only after those jobs finish.
        Returns the number of jobs claimed.
        """
        free = self.concurrency - len(self._tasks)
        if free <= 0:
            await asyncio.wait(set(self._tasks), return_when=asyncio.FIRST_COMPLETED)
            return 0

        jobs = await self._queue.claim(free)
        started = []
        for job in jobs:
            task = asyncio.create_task(self._run_job(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started.append(task)
        if wait and started:
            await asyncio.gather(*started)
        return len(jobs)

    async def drain(self) -> int:
        """Process jobs until nothing is claimable right now."""
        total = 0
        while True:
            claimed = await self.run_once(wait=True)
            if claimed == 0:
                return total
            total += claimed

    async def _run_job(self, job: ScoringJob) -> None:
        try:
            await self._execute(job)
        except Exception:
            # Left "active"; stalled-job recovery picks it up later
            logger.error("Job %s could not be settled", job.job_id, exc_info=True)

    async def _execute(self, job: ScoringJob) -> None:
        try:
            event = EventValidator.parse_event(job.payload)
            result = await asyncio.wait_for(
                self._engine.apply_event(event), timeout=self.job_timeout
            )
        except asyncio.TimeoutError:
            await self._queue.fail(job, f"Job timed out after {self.job_timeout}s")
            return
        except EventValidationError as exc:
            await self._queue.fail(job, exc.detail, retryable=False)
            return
        except LeadScoringError as exc:
            await self._queue.fail(job, exc.detail, retryable=exc.retryable)
            return
        except Exception as exc:
            logger.error("Job %s raised unexpectedly", job.job_id, exc_info=True)
            await self._queue.fail(job, f"{type(exc).__name__}: {exc}")
            return

        await self._queue.complete(job.job_id, result.model_dump(mode="json"))
