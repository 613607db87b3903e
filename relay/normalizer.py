"""
Webhook payload validation and sender normalization.

A webhook call is relayed only if it carries a non-blank `message.text` and a
`from` field naming an individual sender. The sender is rewritten to its
canonical form `<digits>@s.whatsapp.net` before the payload is broadcast:

    "6281234:5@s.whatsapp.net"  ->  "6281234@s.whatsapp.net"

Sender identifiers are located with a small scanner that reproduces the
matching rules of the pattern `\\b[\\d:]+@s\\.whatsapp\\.net\\b` (ASCII digits,
ASCII word boundaries, first match wins).
"""

import json
import math
from typing import Any

from relay.constants import (
    DEVICE_SUFFIX_SEPARATOR,
    GROUP_CHAT_MARKER,
    INDIVIDUAL_DOMAIN_SUFFIX,
    REASON_EMPTY_TEXT,
    REASON_GROUP,
    REASON_INVALID_FORMAT,
    REASON_NO_FROM,
    REASON_NO_MESSAGE,
)
from relay.exceptions import (
    InvalidJSONError,
    MethodNotAllowedError,
    PayloadIgnored,
    SerializationError,
)
from relay.logging import logger

_IDENTIFIER_CHARS = frozenset("0123456789" + DEVICE_SUFFIX_SEPARATOR)


def _is_word_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


def _is_word_boundary(value: str, index: int) -> bool:
    before = index > 0 and _is_word_char(value[index - 1])
    after = index < len(value) and _is_word_char(value[index])
    return before != after


def find_sender_identifier(value: str) -> str | None:
    """
    Find the first individual sender identifier in `value`.

    An identifier is a run of digits and colons directly followed by
    `@s.whatsapp.net`, delimited by word boundaries on both sides. Later
    identifiers in the same string are ignored.

    Args:
        value: Raw `from` field.

    Returns:
        The matched identifier (device suffix included), or None.
    """
    search_from = 0
    while True:
        at = value.find(INDIVIDUAL_DOMAIN_SUFFIX, search_from)
        if at == -1:
            return None
        end = at + len(INDIVIDUAL_DOMAIN_SUFFIX)

        if end == len(value) or not _is_word_char(value[end]):
            run_start = at
            while run_start > 0 and value[run_start - 1] in _IDENTIFIER_CHARS:
                run_start -= 1
            # Leftmost position inside the run that sits on a word boundary
            for start in range(run_start, at):
                if _is_word_boundary(value, start):
                    return value[start:end]

        search_from = at + 1


def canonicalize_sender(value: str) -> str | None:
    """
    Rewrite a raw `from` field into its canonical sender identifier.

    The device suffix (everything from the first `:`) is dropped and the
    result carries exactly one `@s.whatsapp.net` suffix. Canonical values are
    returned unchanged.

    Returns:
        Canonical identifier, or None when `value` holds no identifier.
    """
    identifier = find_sender_identifier(value)
    if identifier is None:
        return None

    local = identifier.split(DEVICE_SUFFIX_SEPARATOR, 1)[0]
    if local.endswith(INDIVIDUAL_DOMAIN_SUFFIX):
        local = local[: -len(INDIVIDUAL_DOMAIN_SUFFIX)]
    return local + INDIVIDUAL_DOMAIN_SUFFIX


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _parse_finite_float(literal: str) -> float:
    value = float(literal)
    if math.isinf(value):
        raise ValueError(f"number {literal} out of range")
    return value


def ensure_post(method: str) -> None:
    """Reject any webhook call that is not a POST, before its body is read."""
    if method.upper() != "POST":
        logger.info(f"Webhook called with method {method}, rejecting")
        raise MethodNotAllowedError()


def parse_webhook_body(body: bytes) -> dict[str, Any]:
    """
    Decode a webhook request body.

    Args:
        body: Raw request body.

    Returns:
        The decoded JSON object.

    Raises:
        InvalidJSONError: Body is not a UTF-8 encoded JSON object, holds a
            number out of float range or nests too deeply.
    """
    try:
        payload = json.loads(
            body,
            parse_constant=_reject_constant,
            parse_float=_parse_finite_float,
        )
    except (ValueError, RecursionError) as ex:
        logger.info(f"Webhook body is not valid JSON: {ex}")
        raise InvalidJSONError() from ex

    if not isinstance(payload, dict):
        logger.info(
            f"Webhook body is a JSON {type(payload).__name__}, expected object"
        )
        raise InvalidJSONError()

    return payload


def normalize_payload(payload: dict[str, Any]) -> bytes:
    """
    Validate a decoded webhook payload and rewrite its sender.

    Checks run in a fixed order and the first failing one decides the
    verdict: message object, message text, sender presence, group marker,
    sender format.

    Args:
        payload: Decoded webhook JSON object. Its `from` field is replaced
            in place by the canonical sender.

    Returns:
        The payload re-serialized as compact UTF-8 JSON.

    Raises:
        PayloadIgnored: Payload must not be relayed, with the reason.
        SerializationError: Payload could not be re-serialized.
    """
    message = payload.get("message")
    if not isinstance(message, dict):
        logger.info("Ignoring webhook: no 'message' object")
        raise PayloadIgnored(REASON_NO_MESSAGE)

    text = message.get("text")
    if not isinstance(text, str) or not text.strip():
        logger.info("Ignoring webhook: message.text is empty")
        raise PayloadIgnored(REASON_EMPTY_TEXT)

    sender = payload.get("from")
    if not isinstance(sender, str) or not sender:
        logger.info("Ignoring webhook: no valid 'from'")
        raise PayloadIgnored(REASON_NO_FROM)

    if GROUP_CHAT_MARKER in sender:
        logger.info(f"Ignoring webhook from group sender: {sender}")
        raise PayloadIgnored(REASON_GROUP)

    canonical = canonicalize_sender(sender)
    if canonical is None:
        logger.info(f"Ignoring webhook: no {INDIVIDUAL_DOMAIN_SUFFIX} sender in {sender}")
        raise PayloadIgnored(REASON_INVALID_FORMAT)

    if canonical != sender:
        logger.debug(f"Normalized sender {sender} -> {canonical}")
    payload["from"] = canonical

    try:
        return json.dumps(
            payload, ensure_ascii=False, separators=(",", ":"), allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as ex:
        logger.error(f"Failed to serialize normalized payload: {ex}")
        raise SerializationError() from ex
