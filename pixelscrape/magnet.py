"""Magnet links, info-hash text form and peer id generation."""

from __future__ import annotations

import re
import secrets

MAGNET_PREFIX = "magnet:?"
_XT_MARKER = "xt=urn:btih:"
PEER_ID_PREFIX = b"-PS0001-"
PEER_ID_LENGTH = 20
_HEX_HASH_RE = re.compile(r"[0-9a-fA-F]{40}")


def parse_magnet_link(magnet_uri: str) -> bytes:
    """The 20-byte info hash named by a magnet link's hex btih parameter.

    Raises ValueError when the link is not a magnet link, names no info
    hash, or the hash is not 40 hexadecimal digits.
    """
    if not magnet_uri.startswith(MAGNET_PREFIX):
        raise ValueError("Invalid magnet link format")
    marker = magnet_uri.find(_XT_MARKER)
    if marker < 0:
        raise ValueError("Magnet link missing info hash")
    start = marker + len(_XT_MARKER)
    end = magnet_uri.find("&", start)
    hash_hex = magnet_uri[start:] if end < 0 else magnet_uri[start:end]
    if len(hash_hex) != 40:
        raise ValueError("Invalid info hash length")
    if not _HEX_HASH_RE.fullmatch(hash_hex):
        raise ValueError("Invalid info hash digits")
    return bytes.fromhex(hash_hex)


def info_hash_to_hex(info_hash: bytes) -> str:
    """The lower-case hexadecimal form of an info hash, used as a torrent id."""
    return bytes(info_hash).hex()


def generate_peer_id() -> bytes:
    """A 20-byte peer id: the client prefix followed by 12 random bytes."""
    return PEER_ID_PREFIX + secrets.token_bytes(PEER_ID_LENGTH - len(PEER_ID_PREFIX))