"""Turns query-executed notifications into QueryLog entries."""

from __future__ import annotations

import json
import sysconfig
import traceback
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from devpulse.debugger import DebugSessionDetector
from devpulse.querylog import QueryLog, QueryRecord, analyze_sql

log = structlog.get_logger()

_PACKAGE_DIR = str(Path(__file__).resolve().parent)
_LIBRARY_DIRS = tuple(
    {sysconfig.get_paths()[key] for key in ("stdlib", "platstdlib", "purelib", "platlib")}
)


def _is_app_frame(filename: str) -> bool:
    """Frames outside the stdlib, installed packages and devpulse itself."""
    if filename.startswith("<"):
        return False
    if "site-packages" in filename or "dist-packages" in filename:
        return False
    path = str(Path(filename).resolve())
    if path.startswith(_PACKAGE_DIR):
        return False
    return not any(path.startswith(d) for d in _LIBRARY_DIRS)


def resolve_call_site(
    stack: traceback.StackSummary | None = None,
    root: Path | None = None,
) -> str:
    """Return the innermost application frame as ``path:lineno:in name``.

    Best-effort: returns an empty string when no application frame is found.
    """
    stack = stack if stack is not None else traceback.extract_stack()
    root = root or Path.cwd()
    for frame in reversed(stack):
        if not _is_app_frame(frame.filename):
            continue
        try:
            shown = str(Path(frame.filename).resolve().relative_to(root.resolve()))
        except ValueError:
            shown = frame.filename
        return f"{shown}:{frame.lineno}:in {frame.name}"
    return ""


def _elapsed_ms(started_at: datetime | float, finished_at: datetime | float) -> float:
    delta = finished_at - started_at
    seconds = delta.total_seconds() if hasattr(delta, "total_seconds") else float(delta)
    return round(seconds * 1000, 2)


def _format_timestamp(started_at: datetime | float) -> str:
    if not isinstance(started_at, datetime):
        started_at = datetime.fromtimestamp(started_at)
    return started_at.strftime("%H:%M:%S.") + f"{started_at.microsecond // 1000:03d}"


class QueryEventSink:
    """Receives query-executed notifications on the caller's thread.

    Every new record is stored; only when no debugger is paused is it also
    pushed to viewers as ``{"sql_query": record}``.
    """

    def __init__(
        self,
        query_log: QueryLog,
        detector: DebugSessionDetector,
        notify: Callable[[str], None],
        call_site: Callable[[], str] = resolve_call_site,
    ) -> None:
        self.query_log = query_log
        self._detector = detector
        self._notify = notify
        self._call_site = call_site

    def on_query_event(
        self,
        name: str,
        started_at: datetime | float,
        finished_at: datetime | float,
        payload: Mapping[str, Any],
    ) -> QueryRecord | None:
        """Record one executed query.

        Args:
            name: Instrumentation event name (e.g. "sql.sqlalchemy")
            started_at: Start time (datetime, or epoch seconds)
            finished_at: Finish time, same type as started_at
            payload: Mapping with "sql" and optional "cached"

        Returns:
            The stored record, or None if it duplicated an existing one
        """
        sql_text = payload.get("sql") or ""
        warning, message = analyze_sql(sql_text)

        record = QueryRecord(
            timestamp=_format_timestamp(started_at),
            duration_ms=_elapsed_ms(started_at, finished_at),
            sql_text=sql_text,
            cached=bool(payload.get("cached", False)),
            call_site=self._call_site(),
            warning=warning,
            message=message,
        )

        if not self.query_log.append(record):
            log.debug("query_duplicate_skipped", event_name=name, sql=sql_text[:80])
            return None

        if not self._detector.is_active():
            self._notify(json.dumps({"sql_query": record.to_dict()}))
        return record

