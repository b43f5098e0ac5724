"""HTTP page and WebSocket push channel for devpulse viewers."""

from __future__ import annotations

import asyncio
import threading
from contextlib import asynccontextmanager
from importlib import resources

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse

from devpulse import logging as console
from devpulse.config import LAUNCH_ENV_VAR, Config, launch_enabled
from devpulse.hub import Subscriber
from devpulse.monitor import Monitor

log = structlog.get_logger()


def _index_html() -> str:
    return resources.files("devpulse").joinpath("static/index.html").read_text(encoding="utf-8")


def create_app(monitor: Monitor) -> FastAPI:
    """Build the FastAPI app serving the viewer page and push channel.

    The app lifespan binds the hub to the serving loop and runs the
    periodic scheduler.
    """
    hub = monitor.hub

    @asynccontextmanager
    async def _lifespan(_: FastAPI):
        hub.bind(asyncio.get_running_loop())
        monitor.scheduler.start()
        try:
            yield
        finally:
            await monitor.scheduler.stop()
            hub.unbind()

    app = FastAPI(
        title="devpulse",
        description="Live host metrics and SQL query feed for local development.",
        lifespan=_lifespan,
    )
    app.state.monitor = monitor

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        return _index_html()

    @app.websocket("/")
    async def push_channel(websocket: WebSocket) -> None:
        await websocket.accept()
        subscriber = Subscriber(websocket)
        await hub.on_connect(subscriber)
        try:
            while True:
                message = await websocket.receive_text()
                await hub.on_client_message(subscriber, message)
        except WebSocketDisconnect:
            pass
        finally:
            await hub.on_disconnect(subscriber)

    return app


def serve(monitor: Monitor, host: str | None = None, port: int | None = None) -> None:
    """Run the server in the foreground until interrupted."""
    server_cfg = monitor.config.server
    host = host or server_cfg.host
    port = port or server_cfg.port
    console.server_started(host, port)
    uvicorn.run(create_app(monitor), host=host, port=port, log_level="warning")


def start_server(
    monitor: Monitor | None = None,
    config: Config | None = None,
) -> threading.Thread | None:
    """Start the push server on a background daemon thread.

    Nothing starts unless the launch flag environment variable is "true";
    a diagnostic line is printed instead.

    Returns:
        The server thread, or None when the launch flag is off
    """
    if not launch_enabled():
        log.info("server_not_started", reason="launch_flag_off", env_var=LAUNCH_ENV_VAR)
        console.launch_disabled(LAUNCH_ENV_VAR)
        return None

    monitor = monitor or Monitor(config or Config.load())
    thread = threading.Thread(target=serve, args=(monitor,), daemon=True, name="devpulse-server")
    thread.start()
    server_cfg = monitor.config.server
    log.info("server_thread_started", host=server_cfg.host, port=server_cfg.port)
    return thread
