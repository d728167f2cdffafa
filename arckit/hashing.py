"""Deterministic object dumps and FNV-1a based short hashes."""

from __future__ import annotations

import dataclasses
import datetime as _dt
import enum
import json
from collections.abc import Mapping
from typing import Any

FNV32_OFFSET_BASIS = 2166136261
FNV32_PRIME = 16777619

SAFE_ALPHANUMS = "bcdfghjklmnpqrstvwxz2456789"


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _dump(obj: Any) -> str:
    if obj is None:
        return "nil"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, enum.Enum):
        return f"{type(obj).__name__}({_dump(obj.value)})"
    if isinstance(obj, (int, float)):
        return repr(obj)
    if isinstance(obj, str):
        return _quote(obj)
    if isinstance(obj, (bytes, bytearray)):
        return "[]byte{" + ", ".join(f"0x{b:02x}" for b in obj) + "}"
    if isinstance(obj, (_dt.datetime, _dt.date, _dt.time, _dt.timedelta)):
        return f"{type(obj).__name__}({obj!s})"
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        fields = (
            f"{field.name}:{_dump(getattr(obj, field.name))}"
            for field in dataclasses.fields(obj)
        )
        return f"{type(obj).__name__}{{" + ", ".join(fields) + "}"
    if isinstance(obj, Mapping):
        entries = sorted((_dump(k), _dump(v)) for k, v in obj.items())
        return "map[" + ", ".join(f"{k}:{v}" for k, v in entries) + "]"
    if isinstance(obj, (set, frozenset)):
        return "set[" + ", ".join(sorted(_dump(item) for item in obj)) + "]"
    if isinstance(obj, (list, tuple)):
        return "[" + ", ".join(_dump(item) for item in obj) + "]"
    return repr(obj)


def dump_object(obj: Any) -> str:
    """Render an object as a stable string: mapping keys are sorted,
    nested values are followed and printed in full."""
    return _dump(obj)


def fnv32a(data: bytes) -> int:
    """Return the 32-bit FNV-1a hash of ``data``."""
    value = FNV32_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV32_PRIME) & 0xFFFFFFFF
    return value


def safe_encode_string(value: str) -> str:
    """Map every character onto an alphabet without vowels, so encoded
    strings cannot spell words."""
    return "".join(
        SAFE_ALPHANUMS[byte % len(SAFE_ALPHANUMS)] for byte in value.encode()
    )


def fnv_hash_string_objects(*args: Any) -> str:
    """Hash objects into a short safe string.

    The hasher is reset before each object is written, so the result
    depends on the last object alone.
    """
    data = dump_object(args[-1]).encode() if args else b""
    return safe_encode_string(str(fnv32a(data)))