"""Configuration system for devpulse."""

import os
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

LAUNCH_ENV_VAR = "LAUNCH_DEVPULSE"


@dataclass
class ServerConfig:
    """Push server configuration."""

    host: str = "0.0.0.0"  # Bind on all interfaces
    port: int = 4567
    send_timeout: float = 2.0  # Max seconds a single subscriber send may take


@dataclass
class SamplingConfig:
    """Periodic snapshot configuration."""

    interval: float = 3.0  # Seconds between unsolicited snapshot broadcasts
    disk_path: str = "/"  # Filesystem reported in the disk section


@dataclass
class QueriesConfig:
    """Query log configuration."""

    log_capacity: int = 100  # Oldest records are evicted past this size


@dataclass
class ProcessesConfig:
    """Process table filtering.

    A process is reported when its command line contains any keyword and
    none of the exclude patterns.
    """

    keywords: list[str] = field(
        default_factory=lambda: ["python", "uvicorn", "gunicorn", "flask", "django"]
    )
    exclude: list[str] = field(default_factory=lambda: ["watchmedo", "watchfiles"])


@dataclass
class LoggingConfig:
    """Log file rotation."""

    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def launch_enabled(environ: dict[str, str] | None = None) -> bool:
    """Return True when the launch flag is set to "true"."""
    env = os.environ if environ is None else environ
    return env.get(LAUNCH_ENV_VAR, "").strip().lower() == "true"


@dataclass
class Config:
    """Main configuration container."""

    server: ServerConfig = field(default_factory=ServerConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    queries: QueriesConfig = field(default_factory=QueriesConfig)
    processes: ProcessesConfig = field(default_factory=ProcessesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "devpulse"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "devpulse"

    @property
    def log_path(self) -> Path:
        """JSON Lines log path."""
        return self.state_dir / "devpulse.log"

    def to_toml(self) -> str:
        """Render the config as a TOML document."""
        doc = tomlkit.document()
        for name in ("server", "sampling", "queries", "processes", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_toml())

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() of an empty file are identical.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            server=_load_server_config(data.get("server", {})),
            sampling=_load_sampling_config(data.get("sampling", {})),
            queries=_load_queries_config(data.get("queries", {})),
            processes=_load_processes_config(data.get("processes", {})),
            logging=_load_logging_config(data.get("logging", {})),
        )


def _load_server_config(data: dict) -> ServerConfig:
    """Load server config, validating the port and timeout."""
    d = ServerConfig()
    port = data.get("port", d.port)
    send_timeout = data.get("send_timeout", d.send_timeout)

    if not isinstance(port, int) or not 0 < port < 65536:
        raise ValueError(f"server.port must be between 1 and 65535, got {port!r}")
    if not _is_number(send_timeout) or send_timeout <= 0:
        raise ValueError(f"server.send_timeout must be > 0, got {send_timeout!r}")

    return ServerConfig(
        host=data.get("host", d.host),
        port=port,
        send_timeout=send_timeout,
    )


def _load_sampling_config(data: dict) -> SamplingConfig:
    """Load sampling config."""
    d = SamplingConfig()
    interval = data.get("interval", d.interval)
    if not _is_number(interval) or interval <= 0:
        raise ValueError(f"sampling.interval must be > 0, got {interval!r}")

    return SamplingConfig(
        interval=interval,
        disk_path=data.get("disk_path", d.disk_path),
    )


def _load_queries_config(data: dict) -> QueriesConfig:
    """Load query log config."""
    d = QueriesConfig()
    log_capacity = data.get("log_capacity", d.log_capacity)
    if not isinstance(log_capacity, int) or isinstance(log_capacity, bool) or log_capacity < 1:
        raise ValueError(f"queries.log_capacity must be an integer >= 1, got {log_capacity!r}")
    return QueriesConfig(log_capacity=log_capacity)


def _load_processes_config(data: dict) -> ProcessesConfig:
    """Load process filtering config."""
    d = ProcessesConfig()
    return ProcessesConfig(
        keywords=list(data.get("keywords", d.keywords)),
        exclude=list(data.get("exclude", d.exclude)),
    )


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load log rotation config."""
    d = LoggingConfig()
    return LoggingConfig(
        log_max_bytes=data.get("log_max_bytes", d.log_max_bytes),
        log_backup_count=data.get("log_backup_count", d.log_backup_count),
    )
