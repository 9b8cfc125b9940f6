"""
Repository pattern for data access.

Handles the append-only usage ledger and the rollups read from it.
"""

from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import DailyUsage, UsageRecord, UsageSummary

_COLUMNS = """
    request_id, user_id, operation, input_tokens, output_tokens,
    total_tokens, cost, latency_ms, cache_hit, model_used, quality,
    timestamp, error_kind
"""

_INSERT = f"INSERT INTO ai_usage_log ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"


def _format_timestamp(value: datetime) -> str:
    # Fixed-width ISO text keeps lexical and chronological order identical
    return value.isoformat(timespec="microseconds")


def _to_row(record: UsageRecord) -> tuple:
    return (
        record.request_id,
        record.user_id,
        record.operation,
        record.input_tokens,
        record.output_tokens,
        record.total_tokens,
        record.cost,
        record.latency_ms,
        1 if record.cache_hit else 0,
        record.model_used,
        record.quality,
        _format_timestamp(record.timestamp),
        record.error_kind,
    )


def _from_row(row) -> UsageRecord:
    return UsageRecord(
        request_id=row[0],
        user_id=row[1],
        operation=row[2],
        input_tokens=row[3],
        output_tokens=row[4],
        total_tokens=row[5],
        cost=row[6],
        latency_ms=row[7],
        cache_hit=bool(row[8]),
        model_used=row[9],
        quality=row[10],
        timestamp=datetime.fromisoformat(row[11]),
        error_kind=row[12],
    )


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the ai_usage_log table if it doesn't exist.

    This is an append-only ledger. No UPDATE or DELETE operations should
    ever be performed on this table.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ai_usage_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                request_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                operation TEXT NOT NULL,
                input_tokens INTEGER NOT NULL DEFAULT 0,
                output_tokens INTEGER NOT NULL DEFAULT 0,
                total_tokens INTEGER NOT NULL DEFAULT 0,
                cost REAL NOT NULL DEFAULT 0,
                latency_ms INTEGER NOT NULL DEFAULT 0,
                cache_hit INTEGER NOT NULL DEFAULT 0,
                model_used TEXT NOT NULL,
                quality INTEGER NOT NULL DEFAULT 100,
                timestamp TEXT NOT NULL,
                error_kind TEXT
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS ai_usage_log_user_timestamp_idx
            ON ai_usage_log (user_id, timestamp)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS ai_usage_log_operation_timestamp_idx
            ON ai_usage_log (operation, timestamp)
        """)
        conn.commit()
    finally:
        conn.close()


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single usage record to the ledger.

    Args:
        record: The usage record to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(_INSERT, _to_row(record))
        conn.commit()
    finally:
        conn.close()


def fetch_usage_records(
    user_id: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = 1000,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageRecord]:
    """Fetch usage records, newest first.

    Args:
        user_id: Optional filter for a specific user
        since: Optional lower bound (inclusive) on timestamp
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of usage records ordered by timestamp (newest first)
    """
    conn = get_connection(db_path)
    try:
        query = f"SELECT {_COLUMNS} FROM ai_usage_log"
        params: list = []
        conditions = []

        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since is not None:
            conditions.append("timestamp >= ?")
            params.append(_format_timestamp(since))

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        return [_from_row(row) for row in cursor.fetchall()]
    finally:
        conn.close()


class UsageRepository:
    """Repository for reading and appending usage records.

    Wraps the module-level ledger functions with a fixed database path.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize(self) -> None:
        initialize_schema(self.db_path)

    def append(self, record: UsageRecord) -> None:
        insert_usage_record(record, self.db_path)

    def records(
        self,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 1000
    ) -> List[UsageRecord]:
        return fetch_usage_records(
            user_id=user_id, since=since, limit=limit, db_path=self.db_path
        )

    def usage_since(self, user_id: str, since: datetime) -> DailyUsage:
        """Sum a user's tokens, cost and request count from since onwards.

        Args:
            user_id: User to aggregate
            since: Inclusive lower bound on timestamp

        Returns:
            DailyUsage totals (zeros when the user has no records)
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT
                    COUNT(*),
                    SUM(total_tokens),
                    SUM(cost)
                FROM ai_usage_log
                WHERE user_id = ? AND timestamp >= ?
            """, (user_id, _format_timestamp(since))).fetchone()

            return DailyUsage(
                total_tokens=int(row[1] or 0),
                total_cost=float(row[2] or 0),
                request_count=int(row[0] or 0),
            )
        finally:
            conn.close()

    def summary_since(self, since: datetime) -> UsageSummary:
        """Aggregate all users' records from since onwards.

        Args:
            since: Inclusive lower bound on timestamp

        Returns:
            UsageSummary with averages set to 0 when there are no records
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT
                    COUNT(*),
                    SUM(total_tokens),
                    SUM(cost),
                    AVG(latency_ms),
                    AVG(cache_hit),
                    AVG(quality)
                FROM ai_usage_log
                WHERE timestamp >= ?
            """, (_format_timestamp(since),)).fetchone()

            return UsageSummary(
                total_requests=int(row[0] or 0),
                total_tokens=int(row[1] or 0),
                total_cost=float(row[2] or 0),
                avg_latency_ms=float(row[3] or 0),
                cache_hit_rate=float(row[4] or 0),
                avg_quality=float(row[5] or 0),
            )
        finally:
            conn.close()
