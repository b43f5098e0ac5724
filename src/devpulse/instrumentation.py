"""SQLAlchemy engine instrumentation feeding the QueryEventSink.

Listens for cursor execution on an Engine and reports each statement,
synchronously on the executing thread, as::

    sink.on_query_event("sql.sqlalchemy", started, finished, {"sql": ..., "cached": ...})
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.default import CACHE_HIT

if TYPE_CHECKING:
    from devpulse.sink import QueryEventSink

log = structlog.get_logger()

EVENT_NAME = "sql.sqlalchemy"

# Attribute set on the ExecutionContext; it is discarded with the context
# even when the statement raises and after_cursor_execute never fires
_START_ATTR = "_devpulse_started"


class QueryInstrumentation:
    """Attach/detach query capture on one or more engines."""

    def __init__(self, sink: QueryEventSink) -> None:
        self.sink = sink
        self._engines: list[Engine] = []

    @property
    def engines(self) -> list[Engine]:
        """Engines currently instrumented."""
        return list(self._engines)

    def attach(self, engine: Engine) -> None:
        """Start capturing queries from an engine. Idempotent."""
        if any(e is engine for e in self._engines):
            return
        event.listen(engine, "before_cursor_execute", self._before_cursor_execute)
        event.listen(engine, "after_cursor_execute", self._after_cursor_execute)
        self._engines.append(engine)
        log.info("engine_instrumented", url=engine.url.render_as_string(hide_password=True))

    def detach(self, engine: Engine) -> None:
        """Stop capturing queries from an engine."""
        if not any(e is engine for e in self._engines):
            return
        event.remove(engine, "before_cursor_execute", self._before_cursor_execute)
        event.remove(engine, "after_cursor_execute", self._after_cursor_execute)
        self._engines = [e for e in self._engines if e is not engine]

    def _before_cursor_execute(
        self, conn, cursor, statement, parameters, context, executemany
    ) -> None:
        if context is not None:
            setattr(context, _START_ATTR, datetime.now())

    def _after_cursor_execute(
        self, conn, cursor, statement, parameters, context, executemany
    ) -> None:
        finished = datetime.now()
        started = getattr(context, _START_ATTR, None) or finished

        payload: dict[str, Any] = {
            "sql": statement,
            "cached": getattr(context, "cache_hit", None) is CACHE_HIT,
        }
        try:
            self.sink.on_query_event(EVENT_NAME, started, finished, payload)
        except Exception as e:
            # Never let capture break the application's query
            log.exception("query_capture_failed", error=str(e))
