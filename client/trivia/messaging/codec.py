"""Convert outbound commands to wire text and wire text to typed events."""

import time
from typing import Any

import structlog
from pydantic import ValidationError

from trivia.messaging.encoder import DecodeError, decode, encode
from trivia.messaging.types import ClientMessageType, OutboundEnvelope, ServerEvent, parse_server_event

logger = structlog.get_logger()


def now_ms() -> int:
    return int(time.time() * 1000)


def build_envelope(
    verb: ClientMessageType,
    payload: dict[str, Any] | None = None,
    timestamp: int | None = None,
) -> OutboundEnvelope:
    """Wrap a verb and its payload; the timestamp defaults to send time."""
    return OutboundEnvelope(type=verb, data=payload, timestamp=timestamp if timestamp is not None else now_ms())


def encode_command(
    verb: ClientMessageType,
    payload: dict[str, Any] | None = None,
    timestamp: int | None = None,
) -> str:
    envelope = build_envelope(verb, payload, timestamp)
    return encode(envelope.model_dump(mode="json", exclude_none=True))


def decode_event(raw: str | bytes) -> ServerEvent | None:
    """Decode one inbound frame.

    Returns None for frames that cannot be decoded or do not form a valid
    envelope; those are logged and dropped, never raised.
    """
    try:
        envelope = decode(raw)
    except DecodeError as e:
        logger.warning("dropping undecodable frame", error=str(e))
        return None

    try:
        return parse_server_event(envelope)
    except ValidationError as e:
        logger.warning(
            "dropping malformed envelope",
            event_type=envelope.get("type"),
            error_count=e.error_count(),
        )
        return None
