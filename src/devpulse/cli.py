"""CLI commands for devpulse."""

import click


@click.group()
@click.version_option(package_name="devpulse")
def main() -> None:
    """Stream live host metrics and SQL queries to your browser."""
    pass


@main.command()
@click.option("--host", default=None, help="Interface to bind (default from config)")
@click.option("--port", type=int, default=None, help="Port to listen on (default from config)")
@click.option("--force", is_flag=True, help="Start even if LAUNCH_DEVPULSE is not true")
def serve(host: str | None, port: int | None, force: bool) -> None:
    """Run the push server in the foreground."""
    from devpulse import logging as console
    from devpulse.config import LAUNCH_ENV_VAR, Config, launch_enabled
    from devpulse.logging import configure
    from devpulse.monitor import Monitor
    from devpulse.server import serve as run_server

    if not force and not launch_enabled():
        console.launch_disabled(LAUNCH_ENV_VAR)
        return

    config = Config.load()
    configure(config)
    run_server(Monitor(config), host=host, port=port)


@main.command()
def snapshot() -> None:
    """Print one metrics snapshot as JSON."""
    import json
    import time

    from devpulse.config import Config
    from devpulse.monitor import Monitor

    monitor = Monitor(Config.load())
    time.sleep(0.5)  # CPU counters need an interval since priming
    click.echo(json.dumps(monitor.metrics().to_dict(), indent=2))


@main.group()
def config() -> None:
    """Inspect or create the config file."""
    pass


@config.command("show")
def config_show() -> None:
    """Print the effective configuration as TOML."""
    from devpulse.config import Config

    cfg = Config.load()
    click.echo(f"# {cfg.config_path}")
    click.echo(cfg.to_toml())


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(force: bool) -> None:
    """Write the default config file."""
    from devpulse import logging as console
    from devpulse.config import Config

    cfg = Config()
    if cfg.config_path.exists() and not force:
        click.echo(f"Config already exists at {cfg.config_path} (use --force to overwrite)")
        return
    cfg.save()
    console.config_created(str(cfg.config_path))
