from fastapi import APIRouter

from relay.api.http import health, metrics, webhook
from relay.api.ws import subscribe


def collect_subrouters() -> APIRouter:
    """
    Collect the HTTP and WebSocket routers of the relay into one router.

    Returns:
        APIRouter with /webhook, /ws, /health and /metrics.
    """
    router = APIRouter()

    for module in (webhook, subscribe, health, metrics):
        router.include_router(module.router)

    return router
