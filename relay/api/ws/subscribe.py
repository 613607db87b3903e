from typing import Any

from fastapi import APIRouter
from starlette import status
from starlette.endpoints import WebSocketEndpoint
from starlette.websockets import WebSocket, WebSocketDisconnect

from relay.dependencies import get_connection_manager
from relay.logging import logger
from relay.managers.connection_manager import Subscriber
from relay.utils.metrics import ws_connections_total

router = APIRouter()


@router.websocket_route("/ws")
class Subscribe(WebSocketEndpoint):  # type: ignore[misc]
    """
    Subscriber endpoint receiving every relayed webhook message.

    Subscribers never send anything meaningful: inbound frames are read only
    so that a closed or broken connection is noticed and unregistered.
    """

    encoding = None

    async def dispatch(self) -> None:
        """
        Run the subscriber connection lifecycle.

        1. Accepts the WebSocket upgrade; on failure nothing is registered.
        2. Registers the subscriber with the connection manager.
        3. Reads (and discards) frames until the peer disconnects.
        4. Unregisters the subscriber, unless a failed broadcast already did.
        """
        websocket = WebSocket(self.scope, receive=self.receive, send=self.send)
        manager = get_connection_manager(websocket)

        try:
            await websocket.accept()
        except (WebSocketDisconnect, ConnectionError, RuntimeError) as e:
            logger.warning(f"WebSocket upgrade failed: {e}")
            ws_connections_total.labels(status="upgrade_failed").inc()
            return

        subscriber = Subscriber(websocket)
        ws_connections_total.labels(status="accepted").inc()
        await manager.connect(subscriber)

        close_code = status.WS_1000_NORMAL_CLOSURE
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.receive":
                    await self.on_receive(websocket, message)
                elif message["type"] == "websocket.disconnect":
                    close_code = int(
                        message.get("code") or status.WS_1000_NORMAL_CLOSURE
                    )
                    break
        except (WebSocketDisconnect, ConnectionError, RuntimeError) as e:
            logger.debug(
                f"Read loop of subscriber {subscriber.connection_id} ended: {e}"
            )
            close_code = status.WS_1011_INTERNAL_ERROR
        finally:
            await manager.disconnect(subscriber)
            logger.debug(
                f"Subscriber {subscriber.connection_id} left with code {close_code}"
            )

    async def on_receive(self, websocket: WebSocket, data: Any) -> None:
        logger.debug("Discarding frame sent by subscriber")
