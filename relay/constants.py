"""
Application-level constants for hardcoded relay behavior.

These values define the sender identifier format and the textual verdicts
returned to webhook callers. They are part of the protocol spoken with
webhook publishers and subscribers and should NEVER be changed via
environment variables.

For configurable values (port, log level, Loki), see relay/settings.py.
"""

# ============================================================================
# Sender Identifier Format
# ============================================================================

# Domain suffix of an individual (non-group) WhatsApp sender
INDIVIDUAL_DOMAIN_SUFFIX = "@s.whatsapp.net"

# Substring marking a group chat sender, such senders are never relayed
GROUP_CHAT_MARKER = "@g.us"

# Separator between the phone number and the device suffix ("628123:5")
DEVICE_SUFFIX_SEPARATOR = ":"


# ============================================================================
# Webhook Verdicts
# ============================================================================

# Methods routed to the webhook handler, all but POST answer 405
WEBHOOK_METHODS = [
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "OPTIONS",
    "TRACE",
]

WEBHOOK_OK_BODY = "ok"

# Prefix of the 200 response body for every ignored payload
IGNORED_PREFIX = "ignored: "

REASON_NO_MESSAGE = "no message object"
REASON_EMPTY_TEXT = "empty message.text"
REASON_NO_FROM = "no valid from"
REASON_GROUP = "group detected"
REASON_INVALID_FORMAT = "invalid format"


# ============================================================================
# Logging
# ============================================================================

# Maximum size of a single JSON log line accepted by Loki
LOKI_MAX_LOG_SIZE_BYTES = 256 * 1024
