"""Webhook endpoint: filters inbound messages and relays them to subscribers."""

from fastapi import APIRouter, Request
from starlette.requests import ClientDisconnect
from starlette.responses import PlainTextResponse

from relay.constants import WEBHOOK_METHODS, WEBHOOK_OK_BODY
from relay.dependencies import ConnectionManagerDep
from relay.exceptions import (
    BodyReadError,
    InvalidJSONError,
    MethodNotAllowedError,
    PayloadIgnored,
    RelayException,
    SerializationError,
)
from relay.logging import logger
from relay.normalizer import (
    ensure_post,
    normalize_payload,
    parse_webhook_body,
)
from relay.utils.metrics import webhook_requests_total

router = APIRouter()

_RESULT_LABELS: dict[type[RelayException], str] = {
    MethodNotAllowedError: "method_not_allowed",
    BodyReadError: "bad_request",
    InvalidJSONError: "bad_request",
    PayloadIgnored: "ignored",
    SerializationError: "serialization_error",
}


async def _read_body(request: Request) -> bytes:
    try:
        return await request.body()
    except ClientDisconnect as ex:
        logger.warning("Client disconnected while sending webhook body")
        raise BodyReadError() from ex


@router.api_route(
    "/webhook",
    methods=WEBHOOK_METHODS,
    response_class=PlainTextResponse,
    summary="Relay a message event to all subscribers",
    tags=["webhook"],
)
async def webhook(
    request: Request, manager: ConnectionManagerDep
) -> PlainTextResponse:
    """
    Filter a webhook call and broadcast the normalized payload.

    Responses (all plain text):
    - 405 `method not allowed` for anything but POST
    - 400 `cannot read body` / `invalid JSON`
    - 200 `ignored: <reason>` when the payload is not relayed
    - 500 `failed to serialize filtered body`
    - 200 `ok` once the payload was handed to the broadcaster, whatever
      happened to individual subscribers
    """
    client = request.client.host if request.client else "-"
    logger.info(f"Webhook {request.method} {request.url.path} from {client}")

    try:
        ensure_post(request.method)
        body = await _read_body(request)
        logger.debug(f"Webhook body: {body.decode('utf-8', errors='replace')}")
        payload = parse_webhook_body(body)
        data = normalize_payload(payload)
    except RelayException as ex:
        webhook_requests_total.labels(
            result=_RESULT_LABELS.get(type(ex), "error")
        ).inc()
        return ex.to_http_response()

    await manager.broadcast(data)
    webhook_requests_total.labels(result="ok").inc()

    return PlainTextResponse(WEBHOOK_OK_BODY)
