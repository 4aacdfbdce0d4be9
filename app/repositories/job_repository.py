from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from app.core.constants import CLAIMABLE_JOB_STATES
from app.models.base import utcnow
from app.models.scoring_job import ScoringJob
from app.repositories.base import BaseRepository
from app.schemas.common import JobState


class JobRepository(BaseRepository):
    """Durable queue storage over the ``scoring_jobs`` table."""

    async def get(self, job_id: str) -> Optional[ScoringJob]:
        result = await self._db.execute(
            select(ScoringJob)
            .where(ScoringJob.job_id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(self, job_ids: Sequence[str]) -> List[ScoringJob]:
        if not job_ids:
            return []
        result = await self._db.execute(
            select(ScoringJob).where(ScoringJob.job_id.in_(list(job_ids)))
        )
        return list(result.scalars().all())

    async def insert_if_absent(self, rows: List[Dict[str, Any]]) -> int:
        """Insert job rows, skipping any whose ``job_id`` already exists.

        Returns the number of rows actually inserted.
        """
        if not rows:
            return 0
        table = ScoringJob.__table__
        bind = self._db.get_bind()
        if bind.dialect.name == "postgresql":
            stmt = pg_insert(table).values(rows)
        else:
            stmt = sqlite_insert(table).values(rows)
        stmt = stmt.on_conflict_do_nothing(index_elements=["job_id"])
        result = await self._db.execute(stmt)
        return max(result.rowcount or 0, 0)

    async def claim(self, limit: int, now: Optional[datetime] = None) -> List[ScoringJob]:
        """Move up to *limit* runnable jobs to ``active`` and return them.

        Runnable means waiting, or delayed with its backoff elapsed.
        Highest priority (lowest number) first, then oldest.  On
        PostgreSQL ``SKIP LOCKED`` keeps concurrent pollers from claiming
        the same rows.
        """
        now = now or utcnow()
        result = await self._db.execute(
            select(ScoringJob)
            .where(
                ScoringJob.state.in_(CLAIMABLE_JOB_STATES),
                ScoringJob.next_run_at <= now,
            )
            .order_by(ScoringJob.priority.asc(), ScoringJob.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        jobs = list(result.scalars().all())
        for job in jobs:
            job.state = JobState.active.value
            job.processed_on = now
        await self._db.flush()
        return jobs

    async def mark_completed(self, job_id: str, return_value: Dict[str, Any]) -> None:
        now = utcnow()
        await self._db.execute(
            update(ScoringJob)
            .where(ScoringJob.job_id == job_id)
            .values(
                state=JobState.completed.value,
                attempts_made=ScoringJob.attempts_made + 1,
                return_value=return_value,
                failed_reason=None,
                finished_on=now,
            )
            .execution_options(synchronize_session=False)
        )

    async def mark_attempt_failed(
        self,
        job_id: str,
        attempts_made: int,
        reason: str,
        retry_at: Optional[datetime],
    ) -> None:
        """Record a failed attempt.

        With *retry_at* the job goes to ``delayed``; without it the job is
        dead-lettered as ``failed``.
        """
        values: Dict[str, Any] = {
            "attempts_made": attempts_made,
            "failed_reason": reason,
        }
        if retry_at is None:
            values.update(state=JobState.failed.value, finished_on=utcnow())
        else:
            values.update(state=JobState.delayed.value, next_run_at=retry_at)
        await self._db.execute(
            update(ScoringJob)
            .where(ScoringJob.job_id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def requeue(self, job: ScoringJob, reset_attempts: bool = False) -> None:
        """Put a job back in ``waiting`` so the next poll picks it up."""
        job.state = JobState.waiting.value
        job.next_run_at = utcnow()
        job.finished_on = None
        if reset_attempts:
            job.attempts_made = 0
            job.failed_reason = None

    async def find_stalled(self, started_before: datetime) -> List[ScoringJob]:
        """Return jobs stuck in ``active`` since before *started_before*."""
        result = await self._db.execute(
            select(ScoringJob).where(
                ScoringJob.state == JobState.active.value,
                ScoringJob.processed_on < started_before,
            )
        )
        return list(result.scalars().all())

    async def delete_completed(self, finished_before: datetime) -> int:
        result = await self._db.execute(
            delete(ScoringJob)
            .where(
                ScoringJob.state == JobState.completed.value,
                ScoringJob.finished_on < finished_before,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def count_by_state(self) -> Dict[str, int]:
        result = await self._db.execute(
            select(ScoringJob.state, func.count()).group_by(ScoringJob.state)
        )
        return {state: count for state, count in result.all()}
