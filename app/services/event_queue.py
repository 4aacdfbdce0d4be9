import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import DEFAULT_EVENT_PRIORITY, EVENT_PRIORITIES
from app.core.exceptions import JobNotFoundError
from app.models.base import utcnow
from app.models.scoring_job import ScoringJob
from app.repositories.job_repository import JobRepository
from app.schemas.common import JobState
from app.schemas.event import ScoringEventIn
from app.schemas.queue import (
    JobStatusResponse,
    QueueStats,
    QueuedBatchResponse,
    QueuedEventResponse,
)
from app.services.event_validation import EventValidator

logger = logging.getLogger(__name__)

# Rows per INSERT statement when enqueueing a batch
_INSERT_CHUNK_SIZE = 500


def priority_for(event_type: str) -> int:
    return EVENT_PRIORITIES.get(event_type, DEFAULT_EVENT_PRIORITY)


class EventQueue:
    """Durable, database-backed queue of scoring jobs.

    The job id is the event id, so enqueueing the same event twice is a
    no-op that returns the existing job.  A job moves
    ``waiting → active → completed``; a failed attempt goes to
    ``delayed`` with exponential backoff and, once ``max_attempts`` is
    spent, to ``failed`` where it stays for inspection or a manual
    :meth:`retry_job`.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        max_batch_size: Optional[int] = None,
    ) -> None:
        self._session_factory = session_factory
        self.max_attempts = (
            settings.QUEUE_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.backoff_seconds = (
            settings.QUEUE_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self.max_batch_size = (
            settings.MAX_BATCH_SIZE if max_batch_size is None else max_batch_size
        )

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def submit(self, event: ScoringEventIn) -> QueuedEventResponse:
        async with self._session_factory() as session:
            inserted = await JobRepository(session).insert_if_absent(
                [self._job_row(event)]
            )
            await session.commit()

        if inserted:
            logger.info("Queued event %s (%s)", event.event_id, event.event_type)
            message = "Event queued for processing"
        else:
            logger.info("Event %s already queued", event.event_id)
            message = "Event already queued"
        return QueuedEventResponse(job_id=event.event_id, message=message)

    async def submit_batch(self, events: Sequence[ScoringEventIn]) -> QueuedBatchResponse:
        """Enqueue a whole batch in one transaction.

        Size limits are checked before anything is written.  Repeated
        event ids, inside the batch or against earlier submissions, map
        to a single job.
        """
        EventValidator.validate_batch_size(events, self.max_batch_size)

        rows: Dict[str, Dict[str, Any]] = {}
        for event in events:
            rows.setdefault(event.event_id, self._job_row(event))
        unique_rows = list(rows.values())

        inserted = 0
        async with self._session_factory() as session:
            repo = JobRepository(session)
            for start in range(0, len(unique_rows), _INSERT_CHUNK_SIZE):
                inserted += await repo.insert_if_absent(
                    unique_rows[start : start + _INSERT_CHUNK_SIZE]
                )
            await session.commit()

        logger.info(
            "Queued batch of %d event(s): %d new job(s)", len(events), inserted
        )
        return QueuedBatchResponse(
            queued=len(unique_rows),
            job_ids=list(rows),
            message=f"{len(unique_rows)} events queued for processing",
        )

    def _job_row(self, event: ScoringEventIn) -> Dict[str, Any]:
        now = utcnow()
        return {
            "job_id": event.event_id,
            "lead_id": event.lead_id,
            "event_type": event.event_type,
            "payload": event.model_dump(mode="json"),
            "priority": priority_for(event.event_type),
            "state": JobState.waiting.value,
            "attempts_made": 0,
            "max_attempts": self.max_attempts,
            "next_run_at": now,
            "created_at": now,
        }

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    async def claim(self, limit: int) -> List[ScoringJob]:
        if limit <= 0:
            return []
        async with self._session_factory() as session:
            jobs = await JobRepository(session).claim(limit)
            await session.commit()
        return jobs

    async def complete(self, job_id: str, return_value: Dict[str, Any]) -> None:
        async with self._session_factory() as session:
            await JobRepository(session).mark_completed(job_id, return_value)
            await session.commit()
        logger.info("Job %s completed", job_id)

    def backoff_delay(self, attempt: int) -> timedelta:
        """Delay before the retry that follows failed attempt number *attempt*."""
        return timedelta(seconds=self.backoff_seconds * 2 ** (attempt - 1))

    async def fail(self, job: ScoringJob, reason: str, retryable: bool = True) -> str:
        """Record a failed attempt and return the job's new state."""
        attempts = job.attempts_made + 1
        if retryable and attempts < job.max_attempts:
            retry_at = utcnow() + self.backoff_delay(attempts)
            state = JobState.delayed.value
            logger.warning(
                "Job %s attempt %d/%d failed, retrying at %s: %s",
                job.job_id,
                attempts,
                job.max_attempts,
                retry_at.isoformat(),
                reason,
            )
        else:
            retry_at = None
            state = JobState.failed.value
            logger.error(
                "Job %s dead-lettered after %d attempt(s): %s",
                job.job_id,
                attempts,
                reason,
            )

        async with self._session_factory() as session:
            await JobRepository(session).mark_attempt_failed(
                job.job_id, attempts, reason, retry_at
            )
            await session.commit()
        return state

    # ------------------------------------------------------------------
    # Inspection and maintenance
    # ------------------------------------------------------------------

    async def stats(self) -> QueueStats:
        async with self._session_factory() as session:
            counts = await JobRepository(session).count_by_state()
        return QueueStats(
            waiting=counts.get(JobState.waiting.value, 0),
            active=counts.get(JobState.active.value, 0),
            completed=counts.get(JobState.completed.value, 0),
            failed=counts.get(JobState.failed.value, 0),
            delayed=counts.get(JobState.delayed.value, 0),
            total=sum(counts.values()),
        )

    async def job_status(self, job_id: str) -> JobStatusResponse:
        async with self._session_factory() as session:
            job = await JobRepository(session).get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return self._status(job)

    async def retry_job(self, job_id: str) -> JobStatusResponse:
        """Send a dead-lettered job round again with a fresh attempt budget.

        Jobs in any other state are returned unchanged.
        """
        async with self._session_factory() as session:
            repo = JobRepository(session)
            job = await repo.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if job.state == JobState.failed.value:
                await repo.requeue(job, reset_attempts=True)
                await session.commit()
                logger.info("Job %s re-queued by operator", job_id)
            return self._status(job)

    async def clean_completed(self, older_than: Optional[timedelta] = None) -> int:
        """Delete completed jobs that finished more than *older_than* ago."""
        if older_than is None:
            older_than = timedelta(hours=settings.COMPLETED_JOB_RETENTION_HOURS)
        async with self._session_factory() as session:
            removed = await JobRepository(session).delete_completed(
                utcnow() - older_than
            )
            await session.commit()
        if removed:
            logger.info("Removed %d completed job(s)", removed)
        return removed

    async def recover_stalled(self, stalled_after: Optional[timedelta] = None) -> int:
        """Treat jobs stuck in ``active`` as failed attempts.

        A worker that died mid-job leaves its row ``active``; counting that
        as an attempt sends the job back through retry or dead-letter.
        """
        if stalled_after is None:
            stalled_after = timedelta(seconds=settings.STALLED_JOB_SECONDS)
        async with self._session_factory() as session:
            stalled = await JobRepository(session).find_stalled(
                utcnow() - stalled_after
            )
        for job in stalled:
            await self.fail(job, "Job stalled: worker stopped responding")
        if stalled:
            logger.warning("Recovered %d stalled job(s)", len(stalled))
        return len(stalled)

    @staticmethod
    def _status(job: ScoringJob) -> JobStatusResponse:
        return JobStatusResponse(
            job_id=job.job_id,
            state=job.state,
            priority=job.priority,
            attempts_made=job.attempts_made,
            max_attempts=job.max_attempts,
            failed_reason=job.failed_reason,
            processed_on=job.processed_on,
            finished_on=job.finished_on,
            next_run_at=job.next_run_at,
            data=job.payload or {},
            return_value=job.return_value,
        )
