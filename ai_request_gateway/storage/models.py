"""
Data models for storage layer.

Defines the usage ledger entry and the rollups computed from it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UsageRecord:
    """Immutable accounting entry for one gateway invocation.

    Append-only: one record per invocation, never modified once written.
    """
    request_id: str
    user_id: str
    operation: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost: float
    latency_ms: int
    cache_hit: bool
    model_used: str
    quality: int
    timestamp: datetime
    error_kind: Optional[str] = None

    def __post_init__(self):
        """Validate accounting values."""
        if self.cost < 0:
            raise ValueError("cost cannot be negative")
        if not 0 <= self.quality <= 100:
            raise ValueError("quality must be between 0 and 100")
        if self.total_tokens != self.input_tokens + self.output_tokens:
            raise ValueError("total_tokens must equal input_tokens + output_tokens")


@dataclass(frozen=True)
class DailyUsage:
    """Per-user totals since local midnight."""
    total_tokens: int
    total_cost: float
    request_count: int


EMPTY_DAILY_USAGE = DailyUsage(total_tokens=0, total_cost=0.0, request_count=0)


@dataclass(frozen=True)
class UsageSummary:
    """Aggregate over all users since local midnight."""
    total_requests: int
    total_tokens: int
    total_cost: float
    avg_latency_ms: float
    cache_hit_rate: float
    avg_quality: float
