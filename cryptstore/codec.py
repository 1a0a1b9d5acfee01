"""
Payload Codec
Converts typed values to stored bytes and back.

Byte payloads pass through unchanged. Anything else is written as indented
JSON text encoded as ASCII (non-ASCII characters are escaped), and read
back by parsing the text and rebuilding the requested type.

Rebuilding supports dataclasses, classes with to_dict/from_dict, and plain
JSON values (dict, list, str, int, float, bool).
"""

import dataclasses
import json

from cryptstore.errors import DecodeError, EncodeError

BYTE_TYPES = (bytes, bytearray, memoryview)
JSON_INDENT = 4


def is_bytes(payload) -> bool:
    return isinstance(payload, BYTE_TYPES)


def is_stream(payload) -> bool:
    """True for open, readable file-like objects."""
    return callable(getattr(payload, "read", None)) and not is_bytes(payload)


def _to_jsonable(value):
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def encode(payload) -> bytes:
    """Turn a payload into bytes. Bytes-like payloads are returned as bytes."""
    if is_bytes(payload):
        return bytes(payload)
    try:
        text = json.dumps(_to_jsonable(payload), indent=JSON_INDENT, ensure_ascii=True)
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Cannot serialize {type(payload).__name__}: {e}") from e
    return text.encode("ascii")


def decode(data: bytes, type_=bytes):
    """
    Turn stored bytes back into a value of type_.

    Args:
        data: Bytes produced by encode().
        type_: bytes or bytearray for raw data, object (or None) for the
            parsed JSON as is, otherwise the class to rebuild.

    Raises:
        DecodeError: The text is not ASCII JSON, or does not fit type_.
    """
    if type_ in (bytes, bytearray):
        return type_(data)

    try:
        obj = json.loads(bytes(data).decode("ascii"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Stored bytes are not JSON text: {e}") from e

    if type_ is None or type_ is object:
        return obj

    try:
        if hasattr(type_, "from_dict"):
            return type_.from_dict(obj)
        if dataclasses.is_dataclass(type_):
            if not isinstance(obj, dict):
                raise TypeError(f"expected a JSON object, got {type(obj).__name__}")
            return type_(**obj)
    except (TypeError, KeyError, ValueError) as e:
        raise DecodeError(f"Cannot rebuild {type_.__name__}: {e}") from e

    # bool is an int subclass, and JSON integers are acceptable floats
    if type_ is float and isinstance(obj, int) and not isinstance(obj, bool):
        return float(obj)
    if not isinstance(obj, type_) or (type_ is int and isinstance(obj, bool)):
        raise DecodeError(f"Stored value is {type(obj).__name__}, expected {type_.__name__}")
    return obj
