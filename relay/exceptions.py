"""
Custom exception classes for the relay.

Every exception raised while handling a webhook call carries the HTTP status
and plain-text body it should be answered with, so the endpoint converts any
of them with a single `except RelayException` clause.
"""

from starlette import status
from starlette.responses import PlainTextResponse

from relay.constants import IGNORED_PREFIX


class RelayException(Exception):
    """
    Base exception for webhook request processing.

    Attributes:
        message: Human-readable message, also used as the response body.
        http_status: HTTP status code the caller should receive.
    """

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def body(self) -> str:
        """Response body sent back to the webhook caller."""
        return self.message

    def to_http_response(self) -> PlainTextResponse:
        """
        Convert exception to a plain-text HTTP response.

        Returns:
            PlainTextResponse with the exception's status and body.
        """
        return PlainTextResponse(self.body, status_code=self.http_status)


class MethodNotAllowedError(RelayException):
    """Webhook called with a method other than POST."""

    http_status = status.HTTP_405_METHOD_NOT_ALLOWED

    def __init__(self, message: str = "method not allowed"):
        super().__init__(message)


class BodyReadError(RelayException):
    """Request body could not be read from the client."""

    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "cannot read body"):
        super().__init__(message)


class InvalidJSONError(RelayException):
    """Request body is not a JSON object."""

    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "invalid JSON"):
        super().__init__(message)


class PayloadIgnored(RelayException):
    """
    Payload was understood but is not relayed.

    This is a verdict rather than a failure: the caller receives HTTP 200
    with an `ignored: <reason>` body.
    """

    http_status = status.HTTP_200_OK

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    @property
    def body(self) -> str:
        return f"{IGNORED_PREFIX}{self.reason}"


class SerializationError(RelayException):
    """Normalized payload could not be re-serialized."""

    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "failed to serialize filtered body"):
        super().__init__(message)
