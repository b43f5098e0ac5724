"""Shared test fixtures for devpulse."""

import asyncio

import pytest

from devpulse.config import Config
from devpulse.metrics import CpuUsage, MetricsSnapshot, ProcessInfo, StorageUsage
from devpulse.querylog import QueryRecord

PDB_FRAME = '  File "/usr/lib/python3.12/bdb.py", line 90, in trace_dispatch\n'
APP_FRAME = '  File "/srv/app/views.py", line 12, in index\n'


class FakeDetector:
    """Debug session gate whose answer is set by the test."""

    def __init__(self, active: bool = False) -> None:
        self.active = active

    def is_active(self) -> bool:
        return self.active


class FakeTransport:
    """Records every text frame sent to it."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(data)


class BrokenTransport:
    """A socket the peer already closed."""

    def __init__(self) -> None:
        self.attempts = 0

    async def send_text(self, data: str) -> None:
        self.attempts += 1
        raise ConnectionResetError("peer closed")


class StalledTransport:
    """A socket whose sends never complete."""

    async def send_text(self, data: str) -> None:
        await asyncio.sleep(3600)


async def wait_until(condition, timeout=1.0, interval=0.01):
    """Wait until condition() returns True, or timeout."""
    deadline = asyncio.get_event_loop().time() + timeout
    while not condition():
        if asyncio.get_event_loop().time() > deadline:
            raise TimeoutError(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)


def make_record(
    timestamp: str = "12:00:00.000",
    duration_ms: float = 1.5,
    sql_text: str = "SELECT 1",
    cached: bool = False,
    call_site: str = "app/views.py:12:in index",
    warning: bool = False,
    message: str = "",
) -> QueryRecord:
    """Create a QueryRecord for testing."""
    return QueryRecord(
        timestamp=timestamp,
        duration_ms=duration_ms,
        sql_text=sql_text,
        cached=cached,
        call_site=call_site,
        warning=warning,
        message=message,
    )


def make_snapshot(cpu_used: float = 12.5, processes: int = 1) -> MetricsSnapshot:
    """Create a MetricsSnapshot with sensible defaults for testing."""
    return MetricsSnapshot(
        cpu=CpuUsage(capacity=100, used=cpu_used, idle=80.25),
        memory=StorageUsage(total_gb=16.0, used_gb=9.12, free_gb=6.5),
        disk=StorageUsage(total_gb=494.38, used_gb=210.07, free_gb=284.31),
        processes=tuple(
            ProcessInfo(
                pid=1000 + i,
                command_name="uvicorn",
                full_cmdline="python -m uvicorn app:app --reload",
                description="Application server (hosting the web app)",
            )
            for i in range(processes)
        ),
    )


class FakeBuilder:
    """Snapshot builder returning a fixed snapshot."""

    def __init__(self, snapshot: MetricsSnapshot | None = None) -> None:
        self.snapshot = snapshot or make_snapshot()
        self.calls = 0

    def build(self) -> MetricsSnapshot:
        self.calls += 1
        return self.snapshot


@pytest.fixture
def detector() -> FakeDetector:
    """An inactive debug session gate."""
    return FakeDetector()


@pytest.fixture
def config() -> Config:
    """Default config with a long scheduler interval so tests control ticks."""
    cfg = Config()
    cfg.sampling.interval = 60.0
    cfg.server.send_timeout = 0.2
    return cfg
