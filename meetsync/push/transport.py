"""
Push transports feeding raw event messages into the reconciliation queue.

A transport owns the connection for one identity. It reconnects after a fixed
delay whenever the connection drops; only the subscription handle is reset on
a disconnect, the queue and everything already delivered are left alone.
"""

import asyncio
import logging
import uuid
from typing import Any, Optional, Protocol

import websockets
from websockets.exceptions import WebSocketException

from meetsync.core.config import AppConfig
from meetsync.observability.logger import log_error, log_info, log_warning

logger = logging.getLogger(__name__)


def user_channel(user_id: int) -> str:
    return f"/user/{user_id}/queue/updates"


class PushTransport(Protocol):
    subscription_id: Optional[str]

    async def run(self, sink: "asyncio.Queue[Any]") -> None:
        """Deliver raw messages into ``sink`` until stopped."""
        ...

    def stop(self) -> None:
        ...


class WebSocketPushTransport:
    """Per-identity websocket subscription with fixed-delay reconnects and heartbeats."""

    def __init__(
        self,
        url: str,
        token: str,
        user_id: int,
        reconnect_delay_ms: int = 5000,
        heartbeat_incoming_ms: int = 4000,
        heartbeat_outgoing_ms: int = 4000,
    ):
        self.url = url.rstrip("/")
        self.token = token
        self.channel = user_channel(user_id)
        self.reconnect_delay = reconnect_delay_ms / 1000
        # outgoing heartbeat -> ping interval, incoming heartbeat -> how long to wait for the pong
        self.ping_interval = heartbeat_outgoing_ms / 1000 or None
        self.ping_timeout = heartbeat_incoming_ms / 1000 or None
        self.subscription_id: Optional[str] = None
        self.connections = 0
        self._running = False

    @classmethod
    def from_config(cls, config: AppConfig, token: str, user_id: int) -> "WebSocketPushTransport":
        return cls(
            config.push_url,
            token,
            user_id,
            reconnect_delay_ms=config.reconnect_delay_ms,
            heartbeat_incoming_ms=config.heartbeat_incoming_ms,
            heartbeat_outgoing_ms=config.heartbeat_outgoing_ms,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.url}{self.channel}"

    async def _consume(self, sink: "asyncio.Queue[Any]") -> None:
        async with websockets.connect(
            self.endpoint,
            additional_headers={"Authorization": f"Bearer {self.token}"},
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
        ) as connection:
            self.subscription_id = uuid.uuid4().hex
            self.connections += 1
            log_info("Push subscription established", {
                "channel": self.channel,
                "subscription_id": self.subscription_id,
            })
            async for message in connection:
                await sink.put(message)

    async def run(self, sink: "asyncio.Queue[Any]") -> None:
        self._running = True
        while self._running:
            try:
                await self._consume(sink)
            except (WebSocketException, OSError) as e:
                log_warning("Push connection lost", {
                    "channel": self.channel,
                    "error": str(e),
                    "error_type": type(e).__name__,
                })
            except Exception as e:
                log_error(e, {"action": "push_transport_failed", "channel": self.channel})
            finally:
                self.subscription_id = None

            if self._running:
                logger.info(f"Reconnecting push channel in {self.reconnect_delay:.1f}s")
                await asyncio.sleep(self.reconnect_delay)

    def stop(self) -> None:
        self._running = False


class InProcessPushTransport:
    """Forwards messages from an in-memory channel, e.g. the mock backend's."""

    def __init__(self, source: "asyncio.Queue[Any]"):
        self.source = source
        self.subscription_id: Optional[str] = None
        self._running = False

    async def run(self, sink: "asyncio.Queue[Any]") -> None:
        self._running = True
        self.subscription_id = uuid.uuid4().hex
        try:
            while self._running:
                message = await self.source.get()
                await sink.put(message)
                self.source.task_done()
        finally:
            self.subscription_id = None

    def stop(self) -> None:
        self._running = False
