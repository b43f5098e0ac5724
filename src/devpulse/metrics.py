"""Host resource snapshots built from psutil.

Each section (cpu, memory, disk, processes) is computed independently. A
section whose source fails degrades to zeros instead of failing the whole
snapshot.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass

import psutil
import structlog

from devpulse.config import Config

log = structlog.get_logger()

GB = 1024**3

# Errors a psutil call may surface for a single section
_COLLECT_ERRORS = (psutil.Error, OSError, AttributeError, TypeError, ValueError)

UNKNOWN_PROCESS = "Unknown process"

# Ordered (pattern, label) rules. First match wins.
PROCESS_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"gunicorn|uvicorn|hypercorn"), "Application server (hosting the web app)"),
    (re.compile(r"manage\.py\s+runserver|django"), "Django process"),
    (re.compile(r"flask"), "Flask process"),
    (re.compile(r"devpulse"), "Python process (devpulse)"),
)


def to_gb(num_bytes: float) -> float:
    """Convert bytes to gigabytes rounded to 2 decimals."""
    return round(num_bytes / GB, 2)


@dataclass(frozen=True)
class CpuUsage:
    """CPU utilisation in percent."""

    capacity: int = 100
    used: float = 0.0
    idle: float = 0.0


@dataclass(frozen=True)
class StorageUsage:
    """Total/used/free in gigabytes (memory or disk)."""

    total_gb: float = 0.0
    used_gb: float = 0.0
    free_gb: float = 0.0


@dataclass(frozen=True)
class ProcessInfo:
    """A process matching the configured keywords."""

    pid: int
    command_name: str
    full_cmdline: str
    description: str


@dataclass(frozen=True)
class MetricsSnapshot:
    """Immutable point-in-time aggregation of resource metrics."""

    cpu: CpuUsage
    memory: StorageUsage
    disk: StorageUsage
    processes: tuple[ProcessInfo, ...] = ()

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "cpu": asdict(self.cpu),
            "memory": asdict(self.memory),
            "disk": asdict(self.disk),
            "processes": [asdict(p) for p in self.processes],
        }

    @classmethod
    def from_dict(cls, data: dict) -> MetricsSnapshot:
        """Deserialize from a dictionary produced by to_dict()."""
        return cls(
            cpu=CpuUsage(**data["cpu"]),
            memory=StorageUsage(**data["memory"]),
            disk=StorageUsage(**data["disk"]),
            processes=tuple(ProcessInfo(**p) for p in data["processes"]),
        )


def describe_process(
    cmdline: str,
    rules: tuple[tuple[re.Pattern[str], str], ...] = PROCESS_RULES,
) -> str:
    """Return a human-readable label for a command line."""
    for pattern, label in rules:
        if pattern.search(cmdline):
            return label
    return UNKNOWN_PROCESS


def select_processes(
    table: list[dict],
    keywords: list[str],
    exclude: list[str],
) -> list[ProcessInfo]:
    """Filter raw process dicts down to interesting ones.

    Args:
        table: Dicts with pid, name and cmdline (list of args or None)
        keywords: Keep a process if its command line contains any of these
        exclude: Drop a process if its command line contains any of these
    """
    selected = []
    for proc in table:
        args = proc.get("cmdline") or []
        cmdline = " ".join(args) if isinstance(args, list) else str(args)
        if not any(k in cmdline for k in keywords):
            continue
        if any(x in cmdline for x in exclude):
            continue
        selected.append(
            ProcessInfo(
                pid=proc.get("pid", 0),
                command_name=proc.get("name") or "",
                full_cmdline=cmdline,
                description=describe_process(cmdline),
            )
        )
    return selected


class SnapshotBuilder:
    """Builds MetricsSnapshot instances from psutil counters."""

    def __init__(self, config: Config):
        self.config = config
        # First non-blocking call returns 0.0, so prime the counters now
        try:
            psutil.cpu_percent(interval=None)
            psutil.cpu_times_percent(interval=None)
        except _COLLECT_ERRORS:
            pass

    def build(self) -> MetricsSnapshot:
        """Build a fresh snapshot. Never raises."""
        return MetricsSnapshot(
            cpu=self._cpu(),
            memory=self._memory(),
            disk=self._disk(),
            processes=tuple(self._processes()),
        )

    def _cpu(self) -> CpuUsage:
        # used and idle come from different counters and need not sum to 100
        try:
            used = float(psutil.cpu_percent(interval=None))
            idle = float(psutil.cpu_times_percent(interval=None).idle)
        except _COLLECT_ERRORS as e:
            log.debug("metric_unavailable", metric="cpu", error=str(e))
            return CpuUsage()
        return CpuUsage(used=round(used, 2), idle=round(idle, 2))

    def _memory(self) -> StorageUsage:
        try:
            mem = psutil.virtual_memory()
            return StorageUsage(
                total_gb=to_gb(mem.total),
                used_gb=to_gb(mem.used),
                free_gb=to_gb(mem.available),
            )
        except _COLLECT_ERRORS as e:
            log.debug("metric_unavailable", metric="memory", error=str(e))
            return StorageUsage()

    def _disk(self) -> StorageUsage:
        try:
            usage = psutil.disk_usage(self.config.sampling.disk_path)
            return StorageUsage(
                total_gb=to_gb(usage.total),
                used_gb=to_gb(usage.used),
                free_gb=to_gb(usage.free),
            )
        except _COLLECT_ERRORS as e:
            log.debug("metric_unavailable", metric="disk", error=str(e))
            return StorageUsage()

    def _processes(self) -> list[ProcessInfo]:
        table = []
        try:
            for proc in psutil.process_iter(attrs=["pid", "name", "cmdline"]):
                try:
                    table.append(dict(proc.info))
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    continue
        except _COLLECT_ERRORS as e:
            log.debug("metric_unavailable", metric="processes", error=str(e))
            return []

        cfg = self.config.processes
        return select_processes(table, cfg.keywords, cfg.exclude)
