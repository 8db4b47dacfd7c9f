"""Bencoding: the serialisation format used by torrent files and the wire protocol."""

from __future__ import annotations

import re
from typing import Any

_INT_RE = re.compile(rb"-?(0|[1-9][0-9]*)")
_LEN_RE = re.compile(rb"0|[1-9][0-9]*")
_KEY_ENCODING = "utf-8"
_KEY_ERRORS = "surrogateescape"


class BencodeError(ValueError):
    """Raised when data cannot be bencoded or is not valid bencoding."""


def _key_bytes(key: Any) -> bytes:
    if isinstance(key, str):
        return key.encode(_KEY_ENCODING, _KEY_ERRORS)
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    raise BencodeError(f"dictionary keys must be str or bytes, not {type(key).__name__}")


def _encode(value: Any, out: bytearray) -> None:
    if isinstance(value, bool):
        raise BencodeError("booleans cannot be bencoded")
    if isinstance(value, int):
        out += b"i%de" % value
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        out += b"%d:" % len(raw)
        out += raw
    elif isinstance(value, str):
        _encode(value.encode(_KEY_ENCODING, _KEY_ERRORS), out)
    elif isinstance(value, (list, tuple)):
        out += b"l"
        for item in value:
            _encode(item, out)
        out += b"e"
    elif isinstance(value, dict):
        items = sorted(((_key_bytes(k), v) for k, v in value.items()), key=lambda kv: kv[0])
        keys = [k for k, _ in items]
        if len(set(keys)) != len(keys):
            raise BencodeError("duplicate dictionary key")
        out += b"d"
        for key, item in items:
            _encode(key, out)
            _encode(item, out)
        out += b"e"
    else:
        raise BencodeError(f"cannot bencode value of type {type(value).__name__}")


def encode(value: Any) -> bytes:
    """Bencode ints, strings, bytes, lists and dicts; dict keys are sorted."""
    out = bytearray()
    _encode(value, out)
    return bytes(out)


def _decode(buf: bytes, pos: int) -> tuple[Any, int]:
    if pos >= len(buf):
        raise BencodeError("unexpected end of data")
    lead = buf[pos]
    if lead == ord("i"):
        end = buf.find(b"e", pos + 1)
        if end < 0:
            raise BencodeError("unterminated integer")
        text = buf[pos + 1 : end]
        if not _INT_RE.fullmatch(text) or text == b"-0":
            raise BencodeError(f"invalid integer {text!r}")
        return int(text), end + 1
    if ord("0") <= lead <= ord("9"):
        colon = buf.find(b":", pos)
        if colon < 0:
            raise BencodeError("unterminated string length")
        text = buf[pos:colon]
        if not _LEN_RE.fullmatch(text):
            raise BencodeError(f"invalid string length {text!r}")
        start = colon + 1
        end = start + int(text)
        if end > len(buf):
            raise BencodeError("string runs past end of data")
        return buf[start:end], end
    if lead == ord("l"):
        pos += 1
        items = []
        while True:
            if pos >= len(buf):
                raise BencodeError("unterminated list")
            if buf[pos] == ord("e"):
                return items, pos + 1
            item, pos = _decode(buf, pos)
            items.append(item)
    if lead == ord("d"):
        pos += 1
        result: dict[str, Any] = {}
        while True:
            if pos >= len(buf):
                raise BencodeError("unterminated dictionary")
            if buf[pos] == ord("e"):
                return result, pos + 1
            key, pos = _decode(buf, pos)
            if not isinstance(key, bytes):
                raise BencodeError("dictionary key is not a string")
            value, pos = _decode(buf, pos)
            result[key.decode(_KEY_ENCODING, _KEY_ERRORS)] = value
    raise BencodeError(f"unexpected byte {lead!r} at offset {pos}")


def decode_prefix(data: bytes) -> tuple[Any, int]:
    """Decode one value from the start of data; return it and the bytes consumed."""
    buf = bytes(data)
    try:
        return _decode(buf, 0)
    except RecursionError as exc:
        raise BencodeError("nesting too deep") from exc


def decode(data: bytes) -> Any:
    """Decode a complete bencoded value; trailing bytes are an error."""
    value, end = decode_prefix(data)
    if end != len(data):
        raise BencodeError("trailing data after bencoded value")
    return value