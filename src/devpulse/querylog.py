# src/devpulse/querylog.py
"""Bounded, deduplicated log of intercepted SQL queries.

Holds the most recent 100 records by default. Insertion order is kept and the
oldest record is evicted first once capacity is exceeded.
"""

import re
import threading
from collections import deque
from dataclasses import asdict, dataclass

N_PLUS_ONE_MESSAGE = "Possible N+1 query. Consider eager loading the related data."

_FILTERED_SELECT = re.compile(r"SELECT .* FROM .* WHERE .*", re.IGNORECASE)


def analyze_sql(sql: str) -> tuple[bool, str]:
    """Flag filtered single-table selects as possible N+1 queries.

    Any SELECT ... FROM ... WHERE without an upper-case JOIN is flagged,
    whether or not it actually repeats.

    Returns:
        (warning, message) tuple; message is empty when warning is False
    """
    if _FILTERED_SELECT.search(sql) and "JOIN" not in sql:
        return True, N_PLUS_ONE_MESSAGE
    return False, ""


@dataclass(frozen=True)
class QueryRecord:
    """One intercepted query execution."""

    timestamp: str  # HH:MM:SS.mmm
    duration_ms: float
    sql_text: str
    cached: bool
    call_site: str
    warning: bool
    message: str

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return asdict(self)


class QueryLog:
    """FIFO log of QueryRecords with exact-duplicate suppression.

    append() is safe to call from several threads at once; the duplicate
    check and the insert happen under one lock.
    """

    def __init__(self, capacity: int = 100) -> None:
        self._records: deque[QueryRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        """Return number of records in the log."""
        return len(self._records)

    @property
    def capacity(self) -> int:
        """Return maximum number of records the log can hold."""
        return self._records.maxlen or 0

    @property
    def records(self) -> list[QueryRecord]:
        """Read-only access to records, oldest first (returns a copy)."""
        with self._lock:
            return list(self._records)

    def append(self, record: QueryRecord) -> bool:
        """Insert a record unless an identical one is already logged.

        Equality covers every field including the timestamp.

        Returns:
            True if the record was stored, False if it was a duplicate
        """
        with self._lock:
            if record in self._records:
                return False
            self._records.append(record)
            return True

    def to_list(self) -> list[dict]:
        """Serialize all records, oldest first."""
        return [r.to_dict() for r in self.records]

    def clear(self) -> None:
        """Empty the log."""
        with self._lock:
            self._records.clear()
