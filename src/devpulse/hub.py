# src/devpulse/hub.py
"""Fan-out of serialized state to every connected viewer.

PUSH-BASED DESIGN:
- Scheduler ticks and query captures call notify()/broadcast()
- Any inbound viewer message is a pull request answered to ALL viewers
- Protocol: one JSON text message per push

Subscriber membership is only touched on the hub's event loop. Other
threads go through notify(), which hands the payload to the loop.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

import structlog

from devpulse import logging as console
from devpulse.debugger import DebugSessionDetector

log = structlog.get_logger()

HANDSHAKE = "Connected"

_ids = itertools.count(1)


class Transport(Protocol):
    """Anything that can push one text frame (e.g. a Starlette WebSocket)."""

    async def send_text(self, data: str) -> None: ...


class SubscriberState(Enum):
    """Lifecycle of one push channel."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Subscriber:
    """A push channel handle with Connecting -> Open -> Closed lifecycle.

    Sends only go out while OPEN; anything else is a no-op.
    """

    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self.id = next(_ids)
        self.state = SubscriberState.CONNECTING

    def __repr__(self) -> str:
        return f"Subscriber(id={self.id}, state={self.state.value})"

    def open(self) -> None:
        if self.state is SubscriberState.CONNECTING:
            self.state = SubscriberState.OPEN

    def close(self) -> None:
        self.state = SubscriberState.CLOSED

    async def send(self, data: str) -> bool:
        """Send one text message. Returns False if not OPEN."""
        if self.state is not SubscriberState.OPEN:
            return False
        await self.transport.send_text(data)
        return True


class BroadcastHub:
    """Tracks subscribers and pushes payloads to all of them."""

    def __init__(
        self,
        detector: DebugSessionDetector,
        state_source: Callable[[], dict[str, Any]],
        send_timeout: float = 2.0,
    ) -> None:
        """
        Args:
            detector: Debug session gate checked before pull-request replies
            state_source: Builds the combined {metrics, query_log} state
                (blocking; run in an executor)
            send_timeout: Max seconds one subscriber send may take
        """
        self._detector = detector
        self._state_source = state_source
        self._send_timeout = send_timeout
        self._subscribers: set[Subscriber] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def subscribers(self) -> list[Subscriber]:
        """Current members (returns a copy)."""
        return list(self._subscribers)

    @property
    def has_clients(self) -> bool:
        """Check if any subscribers are connected."""
        return len(self._subscribers) > 0

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach the hub to the loop that owns subscriber state."""
        self._loop = loop

    def unbind(self) -> None:
        """Detach from the loop; later notify() calls are dropped."""
        self._loop = None

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle events (called on the loop by the transport)
    # ─────────────────────────────────────────────────────────────────────

    async def on_connect(self, subscriber: Subscriber) -> None:
        """Register a subscriber and send it the handshake."""
        subscriber.open()
        self._subscribers.add(subscriber)
        log.info("subscriber_connected", subscriber=subscriber.id, count=len(self._subscribers))
        console.client_connected(len(self._subscribers))
        await self._send(subscriber, HANDSHAKE)

    async def on_client_message(self, subscriber: Subscriber, message: str | None = None) -> int:
        """Answer any inbound message with the combined state, sent to everyone.

        Returns:
            Number of subscribers that received the state
        """
        if self._detector.is_active():
            log.info("state_skipped_debug_session", subscriber=subscriber.id)
            console.debug_session_skipped()
            return 0

        loop = asyncio.get_running_loop()
        state = await loop.run_in_executor(None, self._state_source)
        delivered = await self.broadcast(json.dumps(state))
        console.state_sent(delivered)
        return delivered

    async def on_disconnect(self, subscriber: Subscriber) -> None:
        """Forget a subscriber."""
        subscriber.close()
        self._subscribers.discard(subscriber)
        log.info(
            "subscriber_disconnected", subscriber=subscriber.id, count=len(self._subscribers)
        )
        console.client_disconnected(len(self._subscribers))

    # ─────────────────────────────────────────────────────────────────────
    # Fan-out
    # ─────────────────────────────────────────────────────────────────────

    def notify(self, data: str) -> None:
        """Push a payload to every subscriber. Safe to call from any thread.

        The fan-out is scheduled on the hub's loop; if the hub is not bound to
        a running loop the payload is dropped.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            log.debug("notify_dropped", reason="no_loop")
            return
        loop.call_soon_threadsafe(self._schedule, data)

    def _schedule(self, data: str) -> None:
        task = asyncio.ensure_future(self.broadcast(data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def broadcast(self, data: str) -> int:
        """Send a payload to a snapshot of the current members concurrently.

        A failing subscriber does not affect the others.

        Returns:
            Number of subscribers the payload was delivered to
        """
        targets = list(self._subscribers)
        if not targets:
            return 0
        results = await asyncio.gather(*(self._send(s, data) for s in targets))
        return sum(results)

    async def _send(self, subscriber: Subscriber, data: str) -> bool:
        try:
            return await asyncio.wait_for(subscriber.send(data), timeout=self._send_timeout)
        except Exception as e:
            # Membership is cleaned up when the transport reports the disconnect
            log.warning(
                "subscriber_send_failed",
                subscriber=subscriber.id,
                error=str(e) or type(e).__name__,
            )
            subscriber.close()
            return False
