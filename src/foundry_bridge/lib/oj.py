"""Thin orjson wrapper so callers never touch the json module directly."""

from __future__ import annotations

from typing import Any

import orjson

JSONDecodeError = orjson.JSONDecodeError


def loads(data: bytes | bytearray | memoryview | str) -> Any:
    """Decode JSON from bytes or str."""
    return orjson.loads(data)


def dumps(obj: Any) -> str:
    """Encode to compact JSON text (no whitespace between tokens)."""
    return orjson.dumps(obj).decode("utf-8")


def dumpb(obj: Any) -> bytes:
    """Encode to compact JSON bytes."""
    return orjson.dumps(obj)
