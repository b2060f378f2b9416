"""
JSON encoder/decoder for the session websocket wire format.

Every frame on the wire is a UTF-8 JSON object. Decoding enforces a payload
size limit and rejects anything that is not an object so that a misbehaving
producer cannot push arbitrary values into the reconciler.
"""

import json
from typing import Any

# Larger frames are dropped before parsing.
MAX_FRAME_LEN = 256 * 1024  # 256KB


class DecodeError(Exception):
    """Error raised when a wire frame cannot be decoded into an object."""


def encode(data: dict[str, Any]) -> str:
    """
    Encode a dict to compact JSON text.
    """
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def decode(raw: str | bytes) -> dict[str, Any]:
    """
    Decode a JSON frame to a dict.

    Raises DecodeError if the frame is oversized, not valid JSON, or not an object.
    """
    if len(raw) > MAX_FRAME_LEN:
        raise DecodeError(f"frame too large: {len(raw)} bytes (max {MAX_FRAME_LEN})")
    try:
        result = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"failed to decode JSON frame: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected object, got {type(result).__name__}")

    return result
