"""Tests for QueryEventSink."""

import json
import traceback
from datetime import datetime, timedelta
from pathlib import Path

from devpulse.querylog import N_PLUS_ONE_MESSAGE, QueryLog
from devpulse.sink import QueryEventSink, resolve_call_site
from tests.conftest import FakeDetector

STARTED = datetime(2024, 5, 1, 14, 3, 7, 123456)


def make_sink(active: bool = False, capacity: int = 100):
    """Create a sink with a recording notify callback."""
    sent: list[str] = []
    detector = FakeDetector(active)
    sink = QueryEventSink(
        QueryLog(capacity=capacity),
        detector,
        notify=sent.append,
        call_site=lambda: "app/models.py:42:in load_user",
    )
    return sink, sent, detector


class TestOnQueryEvent:
    """Tests for QueryEventSink.on_query_event()."""

    def test_builds_record_from_event(self):
        sink, _, _ = make_sink()
        finished = STARTED + timedelta(microseconds=2340)

        record = sink.on_query_event(
            "sql.sqlalchemy", STARTED, finished, {"sql": "SELECT 1", "cached": True}
        )

        assert record is not None
        assert record.timestamp == "14:03:07.123"
        assert record.duration_ms == 2.34
        assert record.sql_text == "SELECT 1"
        assert record.cached is True
        assert record.call_site == "app/models.py:42:in load_user"
        assert record.warning is False
        assert record.message == ""

    def test_duration_rounded_to_two_decimals(self):
        sink, _, _ = make_sink()
        record = sink.on_query_event(
            "sql", STARTED, STARTED + timedelta(milliseconds=12, microseconds=500), {"sql": "x"}
        )
        assert record.duration_ms == 12.5

    def test_accepts_epoch_seconds(self):
        sink, _, _ = make_sink()
        started = STARTED.timestamp()
        record = sink.on_query_event("sql", started, started + 0.25, {"sql": "SELECT 1"})
        assert record.duration_ms == 250.0
        assert record.timestamp == "14:03:07.123"

    def test_missing_keys_default(self):
        sink, _, _ = make_sink()
        record = sink.on_query_event("sql", STARTED, STARTED, {})
        assert record.sql_text == ""
        assert record.cached is False
        assert record.warning is False

    def test_none_sql_defaults_to_empty(self):
        sink, _, _ = make_sink()
        record = sink.on_query_event("sql", STARTED, STARTED, {"sql": None})
        assert record.sql_text == ""

    def test_flags_possible_n_plus_one(self):
        sink, _, _ = make_sink()
        record = sink.on_query_event(
            "sql", STARTED, STARTED, {"sql": "SELECT * FROM users WHERE id = 1"}
        )
        assert record.warning is True
        assert record.message == N_PLUS_ONE_MESSAGE

    def test_notifies_with_sql_query_payload(self):
        sink, sent, _ = make_sink()
        record = sink.on_query_event("sql", STARTED, STARTED, {"sql": "SELECT 1"})

        assert len(sent) == 1
        assert json.loads(sent[0]) == {"sql_query": record.to_dict()}

    def test_duplicate_event_is_silently_discarded(self):
        sink, sent, _ = make_sink()
        payload = {"sql": "SELECT 1"}

        first = sink.on_query_event("sql", STARTED, STARTED, payload)
        second = sink.on_query_event("sql", STARTED, STARTED, payload)

        assert first is not None
        assert second is None
        assert len(sink.query_log) == 1
        assert len(sent) == 1

    def test_same_sql_different_duration_is_kept(self):
        sink, sent, _ = make_sink()
        sink.on_query_event("sql", STARTED, STARTED, {"sql": "SELECT 1"})
        later = STARTED + timedelta(milliseconds=1)
        sink.on_query_event("sql", STARTED, later, {"sql": "SELECT 1"})
        assert len(sink.query_log) == 2
        assert len(sent) == 2

    def test_debug_session_suppresses_notification_but_still_logs(self):
        sink, sent, _ = make_sink(active=True)

        record = sink.on_query_event("sql", STARTED, STARTED, {"sql": "SELECT 1"})

        assert record is not None
        assert sink.query_log.records == [record]
        assert sent == []

    def test_notifications_resume_after_debug_session(self):
        sink, sent, detector = make_sink(active=True)
        sink.on_query_event("sql", STARTED, STARTED, {"sql": "SELECT 1"})

        detector.active = False
        sink.on_query_event("sql", STARTED, STARTED, {"sql": "SELECT 2"})

        assert len(sent) == 1
        assert json.loads(sent[0])["sql_query"]["sql_text"] == "SELECT 2"

    def test_log_stays_bounded(self):
        sink, _, _ = make_sink(capacity=5)
        for i in range(12):
            sink.on_query_event("sql", STARTED, STARTED, {"sql": f"SELECT {i}"})
        assert len(sink.query_log) == 5
        assert sink.query_log.records[0].sql_text == "SELECT 7"


class TestResolveCallSite:
    """Tests for resolve_call_site()."""

    def test_returns_innermost_app_frame(self, tmp_path: Path):
        stack = traceback.StackSummary.from_list(
            [
                (str(tmp_path / "app" / "views.py"), 10, "index", None),
                (str(tmp_path / "app" / "models.py"), 42, "load_user", None),
                ("/usr/lib/python3/site-packages/sqlalchemy/engine/base.py", 1, "execute", None),
            ]
        )
        assert resolve_call_site(stack, root=tmp_path) == "app/models.py:42:in load_user"

    def test_skips_library_and_synthetic_frames(self, tmp_path: Path):
        stack = traceback.StackSummary.from_list(
            [
                ("<frozen runpy>", 1, "_run_module_as_main", None),
                ("/opt/venv/lib/python3.12/site-packages/flask/app.py", 5, "dispatch", None),
            ]
        )
        assert resolve_call_site(stack, root=tmp_path) == ""

    def test_keeps_absolute_path_outside_root(self, tmp_path: Path):
        outside = "/srv/other/job.py"
        stack = traceback.StackSummary.from_list([(outside, 3, "run", None)])
        assert resolve_call_site(stack, root=tmp_path) == f"{outside}:3:in run"

    def test_finds_this_test_from_live_stack(self):
        site = resolve_call_site()
        assert "test_sink.py" in site
        assert site.endswith("in test_finds_this_test_from_live_stack")
