"""
MessagePack codec for the page bridge.

Every frame is a single MessagePack map. Outbound pydantic messages are
dumped in JSON mode first so enums travel as their string values.
"""

from typing import Any

import msgpack
from pydantic import BaseModel


class DecodeError(Exception):
    """Error raised when a frame is not a well-formed MessagePack map."""


# A full page snapshot is the largest frame; mutation batches are far smaller.
MAX_BUFFER_LEN = 1024 * 1024  # 1MB total payload
MAX_STR_LEN = 64 * 1024  # 64KB per string
MAX_BIN_LEN = 64 * 1024
MAX_ARRAY_LEN = 4096  # children of one node, records of one batch
MAX_MAP_LEN = 256  # attributes of one node
MAX_EXT_LEN = 1024


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(data, use_bin_type=True)


def encode_model(message: BaseModel) -> bytes:
    return encode(message.model_dump(mode="json"))


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode MessagePack bytes to a dict.

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
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected map, got {type(result).__name__}")

    return result
