"""The BitTorrent extension protocol: extended handshakes, ut_metadata and ut_pex."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable

from pixelscrape.bencode import BencodeError, decode, decode_prefix, encode

REQUEST_QUEUE_DEPTH = 250
_PEER_ENTRY_SIZE = 6


class ExtensionError(ValueError):
    """Raised when an extension message is malformed."""


class ExtensionId(IntEnum):
    """Local message ids for the extensions this client supports."""

    HANDSHAKE = 0
    UT_METADATA = 1
    UT_PEX = 2
    LT_DONTHAVE = 3
    UPLOAD_ONLY = 4


@dataclass
class MetadataMessage:
    """A decoded ut_metadata message."""

    msg_type: int
    piece: int
    total_size: int | None = None
    data: bytes = b""


@dataclass
class PexMessage:
    """A decoded ut_pex message; peers are compact 6-byte IPv4 address/port entries."""

    added: list[bytes] = field(default_factory=list)
    dropped: list[bytes] = field(default_factory=list)


def _decode_dict(payload: bytes) -> dict:
    try:
        value = decode(bytes(payload))
    except BencodeError as exc:
        raise ExtensionError(str(exc)) from exc
    if not isinstance(value, dict):
        raise ExtensionError("extension payload is not a dictionary")
    return value


class ExtensionProtocol:
    """Extension state negotiated with one peer."""

    def __init__(self) -> None:
        self.local_extensions: dict[str, int] = {
            "ut_metadata": int(ExtensionId.UT_METADATA),
            "ut_pex": int(ExtensionId.UT_PEX),
            "lt_donthave": int(ExtensionId.LT_DONTHAVE),
            "upload_only": int(ExtensionId.UPLOAD_ONLY),
        }
        self.peer_extensions: dict[str, int] = {}
        self.peer_client = ""
        self.peer_port = 0
        self.peer_metadata_size = 0
        self.peer_upload_only = False

    def build_extended_handshake(self, listen_port: int, client_name: str, metadata_size: int = 0) -> bytes:
        """Build the bencoded extended handshake payload."""
        message: dict = {
            "m": dict(self.local_extensions),
            "v": client_name,
            "p": listen_port,
            "reqq": REQUEST_QUEUE_DEPTH,
        }
        if metadata_size > 0:
            message["metadata_size"] = metadata_size
        return encode(message)

    def parse_extended_handshake(self, payload: bytes) -> None:
        """Record what the peer announced; raise ExtensionError if malformed."""
        message = _decode_dict(payload)
        extensions = message.get("m")
        if isinstance(extensions, dict):
            self.peer_extensions = {
                name: ident & 0xFF for name, ident in extensions.items() if isinstance(ident, int)
            }
        client = message.get("v")
        if isinstance(client, bytes):
            self.peer_client = client.decode("utf-8", errors="replace")
        port = message.get("p")
        if isinstance(port, int):
            self.peer_port = port & 0xFFFF
        size = message.get("metadata_size")
        if isinstance(size, int):
            self.peer_metadata_size = size
        upload_only = message.get("upload_only")
        if isinstance(upload_only, int):
            self.peer_upload_only = upload_only != 0

    def peer_extension_id(self, extension_name: str) -> int:
        """The peer's message id for an extension, or 0 if it does not support it."""
        return self.peer_extensions.get(extension_name, 0)

    def local_extension_id(self, ext_id: ExtensionId) -> int:
        """Our own message id for an extension."""
        return int(ext_id)

    def supports_ut_metadata(self) -> bool:
        """Whether the peer announced ut_metadata."""
        return self.peer_extension_id("ut_metadata") != 0


def _with_id(ext_msg_id: int, body: bytes) -> bytes:
    return bytes([ext_msg_id & 0xFF]) + body


def build_metadata_request(ext_msg_id: int, piece: int) -> bytes:
    """A ut_metadata request for one piece, prefixed with the message id."""
    return _with_id(ext_msg_id, encode({"msg_type": 0, "piece": piece}))


def build_metadata_data(ext_msg_id: int, piece: int, total_size: int, data: bytes) -> bytes:
    """A ut_metadata data message carrying one piece of metadata."""
    header = encode({"msg_type": 1, "piece": piece, "total_size": total_size})
    return _with_id(ext_msg_id, header) + bytes(data)


def build_metadata_reject(ext_msg_id: int, piece: int) -> bytes:
    """A ut_metadata reject for one piece."""
    return _with_id(ext_msg_id, encode({"msg_type": 2, "piece": piece}))


def _compact(peers: Iterable[bytes]) -> bytes:
    entries = [bytes(peer) for peer in peers]
    for entry in entries:
        if len(entry) != _PEER_ENTRY_SIZE:
            raise ValueError("compact peer entries must be 6 bytes")
    return b"".join(entries)


def build_pex_message(ext_msg_id: int, added: Iterable[bytes], dropped: Iterable[bytes]) -> bytes:
    """A ut_pex message listing added and dropped peers."""
    return _with_id(ext_msg_id, encode({"added": _compact(added), "dropped": _compact(dropped)}))


def parse_metadata_message(payload: bytes) -> MetadataMessage:
    """Decode a ut_metadata message body (without the message id byte)."""
    payload = bytes(payload)
    if not payload:
        raise ExtensionError("empty metadata message")
    try:
        message, consumed = decode_prefix(payload)
    except BencodeError as exc:
        raise ExtensionError(str(exc)) from exc
    if not isinstance(message, dict):
        raise ExtensionError("metadata message is not a dictionary")
    msg_type = message.get("msg_type")
    if not isinstance(msg_type, int):
        raise ExtensionError("metadata message has no msg_type")
    piece = message.get("piece")
    if not isinstance(piece, int):
        raise ExtensionError("metadata message has no piece")
    total_size = message.get("total_size")
    return MetadataMessage(
        msg_type=msg_type & 0xFF,
        piece=piece,
        total_size=total_size if isinstance(total_size, int) else None,
        data=payload[consumed:],
    )


def _split_peers(raw: bytes) -> list[bytes]:
    usable = len(raw) - len(raw) % _PEER_ENTRY_SIZE
    return [raw[i : i + _PEER_ENTRY_SIZE] for i in range(0, usable, _PEER_ENTRY_SIZE)]


def parse_pex_message(payload: bytes) -> PexMessage:
    """Decode a ut_pex message body; incomplete trailing entries are ignored."""
    message = _decode_dict(payload)
    result = PexMessage()
    added = message.get("added")
    if isinstance(added, bytes):
        result.added = _split_peers(added)
    dropped = message.get("dropped")
    if isinstance(dropped, bytes):
        result.dropped = _split_peers(dropped)
    return result