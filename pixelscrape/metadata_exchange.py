"""Downloading a torrent's info dictionary from peers over ut_metadata."""

from __future__ import annotations

import hashlib
import logging
import threading
from enum import IntEnum
from typing import Callable, Optional, Protocol

from pixelscrape.extension import (
    ExtensionError,
    ExtensionProtocol,
    build_metadata_reject,
    build_metadata_request,
    parse_metadata_message,
)

logger = logging.getLogger(__name__)


class ExtensionMessageId(IntEnum):
    """Extension message ids negotiated during the extended handshake."""

    HANDSHAKE = 0
    UT_METADATA = 1
    UT_PEX = 2


class MetadataMessageType(IntEnum):
    """The msg_type field of a ut_metadata message."""

    REQUEST = 0
    DATA = 1
    REJECT = 2


class ExtendedMessageSink(Protocol):
    def send_extended_message(self, extended_msg_id: int, payload: bytes) -> None: ...


class MetadataExchange:
    """Collects metadata pieces from a peer and verifies them against the info hash."""

    PIECE_SIZE = 16384

    def __init__(self, info_hash: bytes, on_complete: Optional[Callable[[bytes], None]] = None) -> None:
        info_hash = bytes(info_hash)
        if len(info_hash) != 20:
            raise ValueError("info hash must be 20 bytes")
        self._info_hash = info_hash
        self._on_complete = on_complete
        self._metadata_size: int | None = None
        self._peer_ut_metadata_id: int | None = None
        self._pieces: list[bytes | None] = []
        self._complete_metadata = b""
        self._complete = False
        self._lock = threading.RLock()

    def handle_extension_handshake(self, payload: bytes) -> None:
        """Learn the peer's ut_metadata id and the metadata size; malformed input is ignored."""
        ext = ExtensionProtocol()
        try:
            ext.parse_extended_handshake(payload)
        except ExtensionError:
            return

        with self._lock:
            if ext.supports_ut_metadata():
                self._peer_ut_metadata_id = ext.peer_extension_id("ut_metadata")
            else:
                self._peer_ut_metadata_id = None

            size = ext.peer_metadata_size
            if size <= 0:
                return
            if self._metadata_size is None:
                self._metadata_size = size
                num_pieces = -(-size // self.PIECE_SIZE)
                self._pieces = [None] * num_pieces
                logger.info("Metadata size: %d bytes (%d pieces)", size, num_pieces)
            elif self._metadata_size != size:
                logger.warning(
                    "Peer reports different metadata size: %d (expected %d)", size, self._metadata_size
                )

    def handle_metadata_message(self, payload: bytes, peer: ExtendedMessageSink) -> None:
        """Process a ut_metadata message body; requests are rejected, data is stored."""
        try:
            message = parse_metadata_message(payload)
        except ExtensionError:
            return

        with self._lock:
            if message.msg_type == MetadataMessageType.REQUEST:
                if self._peer_ut_metadata_id is not None:
                    ident = self._peer_ut_metadata_id
                    peer.send_extended_message(ident, build_metadata_reject(ident, message.piece))
            elif message.msg_type == MetadataMessageType.DATA:
                if self._metadata_size is None or not 0 <= message.piece < len(self._pieces):
                    return
                if self._pieces[message.piece] is None:
                    self._pieces[message.piece] = message.data
                    logger.debug("Received metadata piece %d/%d", message.piece, len(self._pieces))
                    self._assemble()
            elif message.msg_type == MetadataMessageType.REJECT:
                logger.warning("Peer rejected metadata request for piece %d", message.piece)

    def request_metadata(self, peer: ExtendedMessageSink) -> None:
        """Ask the peer for every metadata piece not yet received."""
        with self._lock:
            if self._peer_ut_metadata_id is None or self._metadata_size is None or self._complete:
                return
            ident = self._peer_ut_metadata_id
            for index, piece in enumerate(self._pieces):
                if piece is None:
                    peer.send_extended_message(ident, build_metadata_request(ident, index))

    @property
    def is_complete(self) -> bool:
        """Whether the metadata has been assembled and verified."""
        return self._complete

    @property
    def metadata(self) -> bytes:
        """The assembled metadata, or empty bytes before assembly."""
        return self._complete_metadata

    @property
    def metadata_size(self) -> int | None:
        """The metadata size announced by the peer, if known."""
        return self._metadata_size

    def _assemble(self) -> None:
        if any(piece is None for piece in self._pieces):
            return
        buffer = b"".join(piece for piece in self._pieces if piece is not None)
        if len(buffer) != self._metadata_size:
            logger.error("Metadata assembly size mismatch: %d != %d", len(buffer), self._metadata_size)
            return
        self._complete_metadata = buffer
        if self._verify():
            self._complete = True
            logger.info("Metadata download complete and verified")
            if self._on_complete is not None:
                self._on_complete(self._complete_metadata)
        else:
            logger.error("Metadata verification failed (hash mismatch)")

    def _verify(self) -> bool:
        if not self._complete_metadata:
            return False
        return hashlib.sha1(self._complete_metadata).digest() == self._info_hash