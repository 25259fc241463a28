"""Event publisher for turn lifecycle updates.

The publisher always keeps a buffer of recent events and calls any
registered hooks synchronously. When started, it also runs a WebSocket
server and broadcasts each event to connected dashboard clients.
"""

import asyncio
import contextlib
import json
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from business_spark.config import get_settings
from business_spark.events.types import EventType, SimulationEvent

logger = structlog.get_logger(__name__)


@dataclass
class ClientConnection:
    """Represents a connected WebSocket client."""

    websocket: ServerConnection
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    subscribed_events: set[EventType] = field(default_factory=set)
    client_id: str = ""

    def __post_init__(self) -> None:
        if not self.client_id and self.websocket.remote_address:
            addr = self.websocket.remote_address
            self.client_id = f"{addr[0]}:{addr[1]}" if isinstance(addr, tuple) else str(addr)

    def __hash__(self) -> int:
        return hash(id(self.websocket))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClientConnection):
            return False
        return self.websocket is other.websocket

    def wants(self, event: SimulationEvent) -> bool:
        """No subscriptions means the client receives everything."""
        return not self.subscribed_events or event.event_type in self.subscribed_events


class EventPublisher:
    """Publishes simulation events to hooks and WebSocket clients.

    Usage:
        publisher = EventPublisher()
        publisher.add_event_hook(print)
        await publisher.start()  # optional: serve ws://host:port

        publisher.publish(some_event)

        await publisher.stop()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        buffer_size: int = 100,
    ):
        settings = get_settings()
        self._host = host or settings.ws_host
        self._port = port or settings.ws_port

        self._server: Server | None = None
        self._clients: set[ClientConnection] = set()
        self._event_buffer: deque[SimulationEvent] = deque(maxlen=buffer_size)
        self._event_hooks: list[Callable[[SimulationEvent], None]] = []
        self._is_running = False

        self._logger = logger.bind(component="event_publisher")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def recent_events(self) -> list[SimulationEvent]:
        """Get recently published events."""
        return list(self._event_buffer)

    def add_event_hook(self, hook: Callable[[SimulationEvent], None]) -> None:
        """Add a hook called synchronously for every published event."""
        self._event_hooks.append(hook)

    def remove_event_hook(self, hook: Callable[[SimulationEvent], None]) -> None:
        if hook in self._event_hooks:
            self._event_hooks.remove(hook)

    async def start(self) -> None:
        """Start the WebSocket server."""
        if self._is_running:
            self._logger.warning("publisher_already_running")
            return

        self._server = await websockets.serve(
            self._handle_client,
            self._host,
            self._port,
            ping_interval=30,
            ping_timeout=10,
        )
        self._is_running = True
        self._logger.info("publisher_started", address=f"ws://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop the WebSocket server and disconnect all clients."""
        if not self._is_running:
            return

        close_tasks = [
            client.websocket.close(1001, "Server shutting down") for client in list(self._clients)
        ]
        if close_tasks:
            await asyncio.gather(*close_tasks, return_exceptions=True)
        self._clients.clear()

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._is_running = False
        self._logger.info("publisher_stopped")

    async def _handle_client(self, websocket: ServerConnection) -> None:
        client = ClientConnection(websocket=websocket)
        self._clients.add(client)
        self._logger.info("client_connected", client_id=client.client_id)

        if self._event_buffer:
            await websocket.send(
                json.dumps(
                    {
                        "type": "event_history",
                        "events": [event.to_dict() for event in self._event_buffer],
                    }
                )
            )

        try:
            async for message in websocket:
                await self._handle_message(client, message)
        except websockets.ConnectionClosed as e:
            self._logger.info("client_disconnected", client_id=client.client_id, code=e.code)
        finally:
            self._clients.discard(client)

    async def _handle_message(self, client: ClientConnection, message: str | bytes) -> None:
        """Handle subscribe/unsubscribe/ping messages from a client."""
        if isinstance(message, bytes):
            try:
                message = message.decode("utf-8")
            except UnicodeDecodeError:
                self._logger.warning("invalid_message_encoding", client_id=client.client_id)
                return

        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            self._logger.warning("invalid_json", client_id=client.client_id)
            return

        msg_type = data.get("type", "") if isinstance(data, dict) else ""
        if msg_type in ("subscribe", "unsubscribe"):
            for et in data.get("event_types", []):
                with contextlib.suppress(ValueError):
                    if msg_type == "subscribe":
                        client.subscribed_events.add(EventType(et))
                    else:
                        client.subscribed_events.discard(EventType(et))
            await client.websocket.send(
                json.dumps(
                    {
                        "type": "subscribed",
                        "event_types": sorted(et.value for et in client.subscribed_events),
                    }
                )
            )
        elif msg_type == "ping":
            await client.websocket.send(json.dumps({"type": "pong"}))
        else:
            self._logger.warning(
                "unknown_message_type", client_id=client.client_id, msg_type=msg_type
            )

    def publish(self, event: SimulationEvent) -> None:
        """Publish an event.

        Non-blocking: hooks run immediately and the WebSocket broadcast is
        scheduled on the running loop.
        """
        self._event_buffer.append(event)

        for hook in self._event_hooks:
            try:
                hook(event)
            except Exception as e:
                self._logger.error("event_hook_error", error=str(e))

        if self._is_running and self._clients:
            asyncio.get_running_loop().create_task(self._broadcast(event))

    async def _broadcast(self, event: SimulationEvent) -> None:
        message = json.dumps(event.to_dict())
        tasks = [
            self._safe_send(client, message)
            for client in list(self._clients)
            if client.wants(event)
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _safe_send(self, client: ClientConnection, message: str) -> None:
        try:
            await client.websocket.send(message)
        except websockets.ConnectionClosed:
            self._clients.discard(client)

    def get_status(self) -> dict[str, Any]:
        """Get publisher status information."""
        return {
            "is_running": self._is_running,
            "host": self._host,
            "port": self._port,
            "client_count": len(self._clients),
            "buffer_size": len(self._event_buffer),
        }
