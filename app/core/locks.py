import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional
from uuid import UUID

from app.core.exceptions import RecalculationConflictError

logger = logging.getLogger(__name__)


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


class LeadLockRegistry:
    """Per-lead mutual exclusion for the scoring critical section.

    Work for different leads never contends; work for the same lead runs
    one at a time.  Entries are reference counted and dropped once no
    task holds or waits on them, so the registry does not grow with the
    number of leads ever seen.

    This only serialises tasks inside one process.  Across processes the
    row lock and the ``score_version`` check on ``leads`` take over.
    """

    def __init__(self) -> None:
        self._entries: Dict[UUID, _LockEntry] = {}

    @asynccontextmanager
    async def hold(
        self, lead_id: UUID, timeout: Optional[float] = None
    ) -> AsyncIterator[None]:
        """Acquire the lock for *lead_id*.

        With a *timeout*, a caller that cannot get the lock in time gets
        :class:`RecalculationConflictError` instead of waiting forever.
        """
        entry = self._entries.get(lead_id)
        if entry is None:
            entry = self._entries[lead_id] = _LockEntry()
        entry.holders += 1
        try:
            if timeout is None:
                await entry.lock.acquire()
            else:
                try:
                    await asyncio.wait_for(entry.lock.acquire(), timeout)
                except asyncio.TimeoutError:
                    logger.warning("Timed out waiting for lead lock %s", lead_id)
                    raise RecalculationConflictError(
                        f"Lead {lead_id} is being rescored; retry later"
                    )
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(lead_id, None)

    def is_locked(self, lead_id: UUID) -> bool:
        entry = self._entries.get(lead_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
