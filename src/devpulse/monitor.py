"""The Monitor context object wiring the pipeline together.

Create exactly one Monitor per process at startup and pass it to the
server and to the query instrumentation. It owns the query log, the
broadcast hub, the scheduler, the sink and the debug-session gate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from devpulse.config import Config
from devpulse.debugger import DebugSessionDetector
from devpulse.hub import BroadcastHub
from devpulse.instrumentation import QueryInstrumentation
from devpulse.metrics import MetricsSnapshot, SnapshotBuilder
from devpulse.querylog import QueryLog
from devpulse.scheduler import PeriodicScheduler
from devpulse.sink import QueryEventSink

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


class Monitor:
    """Process-wide pipeline state."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        detector: DebugSessionDetector | None = None,
        builder: SnapshotBuilder | None = None,
    ) -> None:
        self.config = config or Config()
        self.detector = detector or DebugSessionDetector()
        self.builder = builder or SnapshotBuilder(self.config)
        self.query_log = QueryLog(capacity=self.config.queries.log_capacity)

        self.hub = BroadcastHub(
            self.detector,
            state_source=self.monitor_all,
            send_timeout=self.config.server.send_timeout,
        )
        self.sink = QueryEventSink(self.query_log, self.detector, notify=self.hub.notify)
        self.scheduler = PeriodicScheduler(
            self.detector,
            build_snapshot=self.metrics,
            publish=self.hub.broadcast,
            interval=self.config.sampling.interval,
        )
        self.instrumentation = QueryInstrumentation(self.sink)

    def metrics(self) -> MetricsSnapshot:
        """Build a fresh resource snapshot (without the query log)."""
        return self.builder.build()

    def monitor_all(self) -> dict[str, Any]:
        """Combined state sent in reply to a viewer's pull request."""
        return {
            "metrics": self.metrics().to_dict(),
            "query_log": self.query_log.to_list(),
        }

    def debugging(self) -> bool:
        """Whether a debugger is currently paused in this process."""
        return self.detector.is_active()

    def instrument(self, engine: Engine) -> None:
        """Capture every query executed through a SQLAlchemy engine."""
        self.instrumentation.attach(engine)
