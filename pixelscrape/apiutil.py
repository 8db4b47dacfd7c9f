"""Helpers for the web API: JSON comparison and lenient base64 decoding."""

from __future__ import annotations

from typing import Any

_BASE64_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BASE64_VALUES = {ch: index for index, ch in enumerate(_BASE64_ALPHABET)}


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise TypeError(f"not a JSON value: {type(value).__name__}")


def json_equals(a: Any, b: Any) -> bool:
    """Structural equality of decoded JSON values.

    Numbers are equal only when they print the same, so 1 and 1.0 differ,
    and objects must hold the same keys in the same order.
    """
    kind = _kind(a)
    if kind != _kind(b):
        return False
    if kind == "null":
        return True
    if kind == "number":
        return repr(a) == repr(b)
    if kind in ("bool", "string"):
        return a == b
    if kind == "array":
        return len(a) == len(b) and all(json_equals(x, y) for x, y in zip(a, b))
    items_a = list(a.items())
    items_b = list(b.items())
    return len(items_a) == len(items_b) and all(
        key_a == key_b and json_equals(val_a, val_b)
        for (key_a, val_a), (key_b, val_b) in zip(items_a, items_b)
    )


def decode_base64_lenient(text: str) -> bytes:
    """Decode base64, skipping every character outside the alphabet, padding included."""
    out = bytearray()
    acc = 0
    bits = -8
    for ch in text:
        value = _BASE64_VALUES.get(ch)
        if value is None:
            continue
        acc = ((acc << 6) | value) & 0xFFFFFF
        bits += 6
        if bits >= 0:
            out.append((acc >> bits) & 0xFF)
            bits -= 8
    return bytes(out)