# Uvicorn application factory <https://www.uvicorn.org/#application-factories>
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from relay.logging import logger
from relay.managers.connection_manager import ConnectionManager
from relay.middlewares import (
    CorrelationIDMiddleware,
    LoggingContextMiddleware,
    PrometheusMiddleware,
)
from relay.routing import collect_subrouters


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan handler.

    Shutdown closes every remaining subscriber, they are expected to
    reconnect once the relay is back.
    """
    logger.info("Application startup complete")

    yield

    logger.info("Application shutdown initiated")
    await app.state.connection_manager.close_all()
    logger.info("Application shutdown complete")


def application() -> FastAPI:
    """
    Initializes and configures the relay FastAPI application.

    Routes:
    - `/webhook`: filters and normalizes message events, then broadcasts them
    - `/ws`: subscriber WebSocket receiving every broadcast
    - `/health`, `/metrics`: monitoring

    The application owns one `ConnectionManager`, stored on
    `app.state.connection_manager` and handed to the endpoints through
    `relay.dependencies.get_connection_manager`.

    Middlewares (HTTP only): `CorrelationIDMiddleware`,
    `LoggingContextMiddleware`, `PrometheusMiddleware`.
    """
    app = FastAPI(
        title="Webhook relay",
        description="Relays webhook message events to WebSocket subscribers",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.connection_manager = ConnectionManager()

    app.include_router(collect_subrouters())

    # Middlewares (execute in REVERSE order of registration)
    # Execution flow: CorrelationIDMiddleware → LoggingContextMiddleware → PrometheusMiddleware
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(LoggingContextMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    return app


app = application()  # Need for fastapi cli
