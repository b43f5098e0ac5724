"""devpulse - live host metrics and SQL query feed for local development.

Typical use inside an application::

    import devpulse

    monitor = devpulse.Monitor()
    monitor.instrument(engine)
    devpulse.start_server(monitor)  # only starts when LAUNCH_DEVPULSE=true
"""

from devpulse.monitor import Monitor
from devpulse.server import start_server

__all__ = ["Monitor", "start_server"]
