import asyncio
import time
import uuid
from enum import Enum

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from relay.logging import logger
from relay.utils.metrics import (
    broadcast_duration_seconds,
    broadcasts_total,
    ws_connections_active,
    ws_messages_sent_total,
    ws_send_failures_total,
)


class ConnectionState(str, Enum):
    """Lifecycle of a subscriber connection: CONNECTING -> ACTIVE -> CLOSED."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class Subscriber:
    """
    One live subscriber channel.

    Wraps an accepted WebSocket. Identity is the `connection_id`, two
    subscribers are never equal even when they wrap equal-looking sockets.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.connection_id = str(uuid.uuid4())
        self.state = ConnectionState.CONNECTING

    def __repr__(self) -> str:
        return f"<Subscriber {self.connection_id} {self.state.value}>"

    async def send(self, data: bytes) -> None:
        """Write one broadcast message as a text frame."""
        await self.websocket.send_text(data.decode("utf-8"))

    async def close(self) -> None:
        """
        Close the underlying channel.

        Only the first call has an effect. Sockets already closed by the peer
        are not written to again.
        """
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        if WebSocketState.DISCONNECTED in (
            self.websocket.client_state,
            self.websocket.application_state,
        ):
            return

        try:
            await self.websocket.close()
        except (WebSocketDisconnect, ConnectionError, RuntimeError) as e:
            logger.debug(
                f"Closing subscriber {self.connection_id} failed, "
                f"channel already gone: {e}"
            )


class ConnectionManager:
    """
    Registry of active subscriber connections.

    A single asyncio lock serializes registration, removal and broadcast.
    A broadcast holds the lock while it writes to every subscriber, so it
    always sees one consistent set of subscribers; a slow subscriber delays
    the ones after it.
    """

    def __init__(self) -> None:
        self.connections: dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.connections)

    @property
    def count(self) -> int:
        """Number of currently registered subscribers."""
        return len(self.connections)

    async def connect(self, subscriber: Subscriber) -> None:
        """
        Register a freshly accepted subscriber and mark it active.

        Args:
            subscriber: Subscriber whose WebSocket was already accepted.
        """
        async with self._lock:
            subscriber.state = ConnectionState.ACTIVE
            self.connections[subscriber.connection_id] = subscriber
            ws_connections_active.inc()
            total = len(self.connections)

        logger.info(
            f"Subscriber {subscriber.connection_id} connected "
            f"({total} active)"
        )

    async def disconnect(self, subscriber: Subscriber) -> bool:
        """
        Remove a subscriber and close its channel.

        Safe to call from both the subscriber's own read loop and the
        broadcast failure path: whichever runs second finds the subscriber
        already gone.

        Returns:
            True if this call removed the subscriber, False if it was not
            registered.
        """
        async with self._lock:
            if subscriber.connection_id not in self.connections:
                return False
            await self._remove(subscriber)
            total = len(self.connections)

        logger.info(
            f"Subscriber {subscriber.connection_id} disconnected "
            f"({total} active)"
        )
        return True

    async def broadcast(self, data: bytes) -> int:
        """
        Write `data` to every registered subscriber.

        Subscribers are written one after another. A subscriber whose write
        fails is closed and removed before the next one is tried; the
        broadcast itself never fails.

        Args:
            data: Serialized message.

        Returns:
            Number of subscribers the message was written to.
        """
        delivered = 0
        start_time = time.time()

        async with self._lock:
            # Snapshot, failed subscribers are removed while iterating
            for subscriber in list(self.connections.values()):
                try:
                    await subscriber.send(data)
                except Exception as e:
                    if isinstance(
                        e, (WebSocketDisconnect, ConnectionError, RuntimeError)
                    ):
                        logger.warning(
                            f"Failed to send to subscriber "
                            f"{subscriber.connection_id}: {e}"
                        )
                    else:
                        logger.exception(
                            f"Unexpected error sending to subscriber "
                            f"{subscriber.connection_id}"
                        )
                    ws_send_failures_total.inc()
                    await self._remove(subscriber)
                else:
                    delivered += 1
                    ws_messages_sent_total.inc()
            remaining = len(self.connections)

        broadcasts_total.inc()
        broadcast_duration_seconds.observe(time.time() - start_time)
        logger.info(
            f"Broadcast delivered to {delivered} subscriber(s), "
            f"{remaining} active"
        )
        return delivered

    async def close_all(self) -> None:
        """Close and remove every subscriber (used on shutdown)."""
        async with self._lock:
            subscribers = list(self.connections.values())
            for subscriber in subscribers:
                await self._remove(subscriber)

        if subscribers:
            logger.info(f"Closed {len(subscribers)} subscriber(s)")

    async def _remove(self, subscriber: Subscriber) -> None:
        # Caller holds the lock
        del self.connections[subscriber.connection_id]
        ws_connections_active.dec()
        await subscriber.close()
