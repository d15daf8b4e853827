"""
MessagePack encoder/decoder for the arena wire format.

Every frame on the wire is a MessagePack map with a string "type" key.
Outbound frames are built from pydantic model dumps; inbound frames come
from untrusted browser clients and are decoded under tight size limits.
"""

from typing import Any

import msgpack


class DecodeError(Exception):
    """Error raised when an inbound frame cannot be decoded."""


# Client frames are tiny (a move is two floats); anything larger is abuse.
MAX_BUFFER_LEN = 16 * 1024  # 16KB total payload
MAX_STR_LEN = 4 * 1024  # 4KB per string
MAX_BIN_LEN = 1024  # 1KB per binary
MAX_ARRAY_LEN = 64  # max array elements
MAX_MAP_LEN = 32  # max map entries
MAX_EXT_LEN = 0  # no extension types


def encode(data: dict[str, Any]) -> bytes:
    """
    Encode an outbound message dict to MessagePack bytes.
    """
    return msgpack.packb(data, use_bin_type=True)


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode an inbound MessagePack frame to a dict.

    Raises DecodeError if data is invalid, not a map, or exceeds size limits.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            strict_map_key=True,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError, TypeError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected map, got {type(result).__name__}")

    return result
