"""
Usage tracking for gateway invocations.

Accounting is best-effort observability, not a functional dependency: store
failures are logged here and never reach the caller.
"""

import logging
import threading
from concurrent.futures import Executor, Future, wait
from datetime import datetime
from typing import Callable, List, Optional

from ai_request_gateway.storage.models import (
    EMPTY_DAILY_USAGE,
    DailyUsage,
    UsageRecord,
    UsageSummary,
)
from ai_request_gateway.storage.repository import UsageRepository

logger = logging.getLogger(__name__)


def start_of_day(now: datetime) -> datetime:
    """Server-local midnight of the day containing now."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class UsageTracker:
    """Writes UsageRecords to the ledger and reads daily rollups.

    With an executor, writes are submitted fire-and-forget so response
    latency never depends on the store. Without one they run inline.
    """

    def __init__(
        self,
        repository: UsageRepository,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.repository = repository
        self._executor = executor
        self._clock = clock
        self._pending: List[Future] = []
        self._pending_lock = threading.Lock()

    def track(self, record: UsageRecord) -> None:
        """Append record to the ledger. Never raises."""
        if self._executor is None:
            self._write(record)
            return
        try:
            future = self._executor.submit(self._write, record)
        except RuntimeError as e:
            # Executor already shut down
            logger.error("Failed to schedule usage record %s: %s", record.request_id, e)
            return
        with self._pending_lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def _write(self, record: UsageRecord) -> None:
        try:
            self.repository.append(record)
        except Exception as e:
            logger.error(
                "Failed to track AI usage for request %s (%s): %s",
                record.request_id, record.operation, e
            )

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for background writes submitted so far."""
        with self._pending_lock:
            pending, self._pending = self._pending, []
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        """Finish pending writes and stop the executor, if any."""
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def daily_usage(self, user_id: str, now: Optional[datetime] = None) -> DailyUsage:
        """Sum user_id's tokens, cost and request count for today.

        Records before local midnight are excluded. Read failures are
        logged and reported as zero usage.
        """
        since = start_of_day(now or self._clock())
        try:
            return self.repository.usage_since(user_id, since)
        except Exception as e:
            logger.error("Failed to get daily usage for user %s: %s", user_id, e)
            return EMPTY_DAILY_USAGE

    def daily_summary(self, now: Optional[datetime] = None) -> Optional[UsageSummary]:
        """Aggregate today's records across all users.

        Returns:
            UsageSummary, or None if the store could not be read
        """
        since = start_of_day(now or self._clock())
        try:
            return self.repository.summary_since(since)
        except Exception as e:
            logger.error("Failed to get daily usage summary: %s", e)
            return None
