from typing import Annotated

from fastapi import Depends
from starlette.requests import HTTPConnection

from relay.managers.connection_manager import ConnectionManager


def get_connection_manager(connection: HTTPConnection) -> ConnectionManager:
    """
    Return the connection manager created by the application lifespan.

    Works for both HTTP requests and WebSocket connections.
    """
    return connection.app.state.connection_manager


ConnectionManagerDep = Annotated[
    ConnectionManager, Depends(get_connection_manager)
]
