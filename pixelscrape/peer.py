"""The peer wire protocol: handshakes, messages and a connection to one peer."""

from __future__ import annotations

import errno
import ipaddress
import logging
import select
import socket
import struct
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)

PROTOCOL = b"BitTorrent protocol"
HANDSHAKE_LENGTH = 68
MAX_MESSAGE_LENGTH = 1024 * 1024
CONNECT_TIMEOUT = 3.0

_IN_PROGRESS = {0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN}


class PeerMessageType(IntEnum):
    """Message ids of the peer wire protocol; KEEP_ALIVE has no id on the wire."""

    KEEP_ALIVE = -1
    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    PIECE = 7
    CANCEL = 8
    PORT = 9
    EXTENDED = 20


@dataclass(frozen=True)
class PeerMessage:
    """One message; type is a raw int when the id is not one we know."""

    type: Union[PeerMessageType, int]
    payload: bytes = b""


@dataclass(frozen=True)
class PeerInfo:
    """An IPv4 peer address."""

    ip: bytes
    port: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "ip", bytes(self.ip))
        if len(self.ip) != 4:
            raise ValueError("peer ip must be 4 bytes")
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError("peer port out of range")

    def __str__(self) -> str:
        return str(ipaddress.IPv4Address(self.ip))

    @property
    def address(self) -> tuple[str, int]:
        """The (host, port) pair for socket calls."""
        return str(self), self.port

    @property
    def key(self) -> str:
        """A text key identifying this peer, "ip:port"."""
        return f"{self}:{self.port}"


@dataclass(frozen=True)
class Handshake:
    """A decoded handshake."""

    info_hash: bytes
    peer_id: bytes
    reserved: bytes = bytes(8)


class PieceStore(Protocol):
    def bitfield(self) -> Sequence[bool]: ...

    def read_piece(self, index: int) -> bytes: ...


def _check20(value: bytes, what: str) -> bytes:
    value = bytes(value)
    if len(value) != 20:
        raise ValueError(f"{what} must be 20 bytes")
    return value


def build_handshake(info_hash: bytes, peer_id: bytes) -> bytes:
    """The 68-byte handshake with zeroed reserved bytes."""
    return (
        bytes([len(PROTOCOL)])
        + PROTOCOL
        + bytes(8)
        + _check20(info_hash, "info hash")
        + _check20(peer_id, "peer id")
    )


def parse_handshake(data: bytes) -> Handshake:
    """Decode a 68-byte handshake; raise ValueError if it is not one."""
    data = bytes(data)
    if len(data) != HANDSHAKE_LENGTH:
        raise ValueError("handshake must be 68 bytes")
    if data[0] != len(PROTOCOL) or data[1:20] != PROTOCOL:
        raise ValueError("not a BitTorrent handshake")
    return Handshake(info_hash=data[28:48], peer_id=data[48:68], reserved=data[20:28])


def encode_bitfield(bits: Sequence[bool]) -> bytes:
    """Pack bits most significant first, padding the last byte with zeros."""
    out = bytearray((len(bits) + 7) // 8)
    for index, bit in enumerate(bits):
        if bit:
            out[index // 8] |= 0x80 >> (index % 8)
    return bytes(out)


def decode_bitfield(payload: bytes, num_pieces: int) -> list[bool]:
    """Unpack num_pieces bits; bits the payload does not cover are False."""
    payload = bytes(payload)
    return [
        index // 8 < len(payload) and bool(payload[index // 8] & (0x80 >> (index % 8)))
        for index in range(num_pieces)
    ]


def serialize_message(message: PeerMessage) -> bytes:
    """Length-prefixed wire form of a message."""
    if message.type == PeerMessageType.KEEP_ALIVE:
        return bytes(4)
    payload = bytes(message.payload)
    return struct.pack(">IB", 1 + len(payload), int(message.type)) + payload


def _message_type(code: int) -> Union[PeerMessageType, int]:
    try:
        return PeerMessageType(code)
    except ValueError:
        return code


class PeerConnection:
    """A connection to one peer, outgoing or accepted."""

    def __init__(
        self,
        info_hash: bytes,
        peer_id: bytes,
        peer_info: PeerInfo,
        piece_manager: PieceStore,
        num_pieces: int,
        sock: Optional[socket.socket] = None,
    ) -> None:
        self.info_hash = _check20(info_hash, "info hash")
        self.peer_id = _check20(peer_id, "peer id")
        self.peer_info = peer_info
        self._piece_manager = piece_manager
        self._num_pieces = num_pieces
        self._sock = sock
        self._connected = False
        self.am_choking = True
        self.am_interested = False
        self.peer_choking = True
        self.peer_interested = False
        self._bitfield = list(piece_manager.bitfield())
        self.dht_port: Optional[int] = None
        self.remote_peer_id: Optional[bytes] = None
        self.on_piece: Optional[Callable[[int, int, bytes], None]] = None
        self._handshake_buffer = bytearray()
        self._write_buffer = bytearray()
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    # Connection establishment

    def start_connect(self) -> bool:
        """Begin a non-blocking connect; True if it is under way or done."""
        if self._connected:
            return True
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError:
            return False
        sock.setblocking(False)
        result = sock.connect_ex(self.peer_info.address)
        if result not in _IN_PROGRESS:
            sock.close()
            return False
        self._sock = sock
        return True

    def check_connect_result(self) -> bool:
        """After the socket turns writable, whether the connect succeeded."""
        if self._sock is None:
            return False
        try:
            error = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError:
            error = -1
        if error:
            self._close_socket()
            return False
        return True

    def send_handshake(self) -> bool:
        """Send our handshake; what the socket does not take is buffered."""
        if self._sock is None:
            return False
        data = build_handshake(self.info_hash, self.peer_id)
        try:
            sent = self._sock.send(data)
        except BlockingIOError:
            sent = 0
        except OSError:
            return False
        self._write_buffer += data[sent:]
        return True

    def flush_write_buffer(self) -> bool:
        """Write buffered bytes; True once the buffer is empty."""
        if self._sock is None or not self._write_buffer:
            return True
        try:
            sent = self._sock.send(self._write_buffer)
        except BlockingIOError:
            return False
        except OSError:
            self._close_socket()
            return False
        del self._write_buffer[:sent]
        return not self._write_buffer

    def receive_handshake_nonblocking(self) -> bool:
        """Read what is available of the peer's handshake; True once it is valid."""
        if self._sock is None:
            return False
        try:
            chunk = self._sock.recv(HANDSHAKE_LENGTH - len(self._handshake_buffer))
        except BlockingIOError:
            return False
        except OSError:
            self._handshake_buffer.clear()
            return False
        if not chunk:
            self._handshake_buffer.clear()
            return False
        self._handshake_buffer += chunk
        if len(self._handshake_buffer) < HANDSHAKE_LENGTH:
            return False
        raw = bytes(self._handshake_buffer)
        self._handshake_buffer.clear()
        if not self._accept_handshake(raw):
            return False
        self._announce()
        return True

    def connect(self) -> bool:
        """Connect, exchange handshakes and start the reader thread, blocking."""
        if self._connected:
            return True
        if not self.start_connect():
            return False
        sock = self._sock
        assert sock is not None
        _, writable, _ = select.select([], [sock], [], CONNECT_TIMEOUT)
        if not writable:
            self._close_socket()
            return False
        if not self.check_connect_result():
            return False
        if not self.send_handshake():
            self._close_socket()
            return False
        while self._write_buffer:
            _, writable, _ = select.select([], [sock], [], CONNECT_TIMEOUT)
            if not writable:
                self._close_socket()
                return False
            self.flush_write_buffer()
            if self._sock is None:
                return False
        sock.settimeout(CONNECT_TIMEOUT)
        raw = self._recv_exact(HANDSHAKE_LENGTH)
        if raw is None or not self._accept_handshake(raw):
            self._close_socket()
            return False
        self._announce()
        self.start()
        return True

    def respond_to_handshake(self, remote_peer_id: bytes, remote_reserved: bytes) -> bool:
        """Answer a handshake already read from an accepted socket."""
        if self._sock is None:
            return False
        self.remote_peer_id = bytes(remote_peer_id)
        try:
            self._sock.sendall(build_handshake(self.info_hash, self.peer_id))
        except OSError:
            return False
        self._announce()
        return True

    def start(self) -> None:
        """Switch the socket to blocking mode and start the reader thread."""
        if self._connected:
            return
        if self._sock is not None:
            self._sock.setblocking(True)
        self._connected = True
        self._thread = threading.Thread(
            target=self._run, name=f"peer-{self.peer_info.key}", daemon=True
        )
        self._thread.start()

    def disconnect(self) -> None:
        """Stop the reader thread and close the socket."""
        self._connected = False
        self._handshake_buffer.clear()
        sock = self._sock
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None
        self._close_socket()

    # Messages

    def receive_message(self) -> Optional[PeerMessage]:
        """Read one message, or None if the connection failed or sent garbage."""
        header = self._recv_exact(4)
        if header is None:
            return None
        (length,) = struct.unpack(">I", header)
        if length == 0:
            return PeerMessage(PeerMessageType.KEEP_ALIVE)
        if length > MAX_MESSAGE_LENGTH:
            self._connected = False
            return None
        body = self._recv_exact(length)
        if body is None:
            return None
        return PeerMessage(_message_type(body[0]), body[1:])

    def handle_message(self, message: PeerMessage) -> None:
        """Update state from a message and answer block requests."""
        payload = bytes(message.payload)
        callback_args: Optional[tuple[int, int, bytes]] = None
        with self._lock:
            kind = message.type
            if kind == PeerMessageType.CHOKE:
                self.peer_choking = True
            elif kind == PeerMessageType.UNCHOKE:
                self.peer_choking = False
            elif kind == PeerMessageType.INTERESTED:
                self.peer_interested = True
            elif kind == PeerMessageType.NOT_INTERESTED:
                self.peer_interested = False
            elif kind == PeerMessageType.HAVE:
                if len(payload) >= 4:
                    (index,) = struct.unpack_from(">I", payload)
                    if index < len(self._bitfield):
                        self._bitfield[index] = True
            elif kind == PeerMessageType.BITFIELD:
                bits = self._bitfield[: self._num_pieces]
                bits.extend([False] * (self._num_pieces - len(bits)))
                covered = min(len(payload) * 8, self._num_pieces)
                bits[:covered] = decode_bitfield(payload, self._num_pieces)[:covered]
                self._bitfield = bits
            elif kind == PeerMessageType.REQUEST:
                if len(payload) >= 12:
                    self._serve_request(*struct.unpack_from(">III", payload))
            elif kind == PeerMessageType.PIECE:
                if len(payload) >= 8 and self.on_piece is not None:
                    index, begin = struct.unpack_from(">II", payload)
                    callback_args = (index, begin, payload[8:])
            elif kind == PeerMessageType.PORT:
                if len(payload) >= 2:
                    (self.dht_port,) = struct.unpack_from(">H", payload)
        if callback_args is not None and self.on_piece is not None:
            self.on_piece(*callback_args)

    def send_message(self, message: PeerMessage) -> None:
        """Write a message; a failed write marks the connection as lost."""
        sock = self._sock
        if sock is None:
            return
        data = serialize_message(message)
        with self._send_lock:
            try:
                sock.sendall(data)
            except OSError:
                self._connected = False

    def set_interested(self, interested: bool) -> None:
        """Tell the peer whether we are interested, if that changed."""
        with self._lock:
            if self.am_interested == interested:
                return
            self.am_interested = interested
            kind = PeerMessageType.INTERESTED if interested else PeerMessageType.NOT_INTERESTED
            self.send_message(PeerMessage(kind))

    def send_have(self, piece_index: int) -> None:
        self.send_message(PeerMessage(PeerMessageType.HAVE, struct.pack(">I", piece_index)))

    def send_request(self, index: int, begin: int, length: int) -> None:
        self.send_message(
            PeerMessage(PeerMessageType.REQUEST, struct.pack(">III", index, begin, length))
        )

    def send_piece(self, index: int, begin: int, data: bytes) -> None:
        self.send_message(
            PeerMessage(PeerMessageType.PIECE, struct.pack(">II", index, begin) + bytes(data))
        )

    def set_have_piece(self, piece_index: int, have: bool) -> None:
        """Record a piece in the bitfield and announce it when gained."""
        with self._lock:
            if piece_index < len(self._bitfield):
                self._bitfield[piece_index] = have
                if have:
                    self.send_have(piece_index)

    def send_extended_message(self, extended_msg_id: int, payload: bytes) -> None:
        self.send_message(
            PeerMessage(PeerMessageType.EXTENDED, bytes([extended_msg_id & 0xFF]) + bytes(payload))
        )

    # State

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_choking(self) -> bool:
        """Whether the peer is choking us."""
        return self.peer_choking

    @property
    def bitfield(self) -> list[bool]:
        with self._lock:
            return list(self._bitfield)

    def fileno(self) -> int:
        """The socket's descriptor, or -1 when there is none."""
        return self._sock.fileno() if self._sock is not None else -1

    # Internals

    def _accept_handshake(self, raw: bytes) -> bool:
        try:
            handshake = parse_handshake(raw)
        except ValueError:
            return False
        if handshake.info_hash != self.info_hash:
            return False
        self.remote_peer_id = handshake.peer_id
        return True

    def _announce(self) -> None:
        self.send_message(PeerMessage(PeerMessageType.UNCHOKE))
        self.am_choking = False
        bits = self.bitfield
        if any(bits):
            self.send_message(PeerMessage(PeerMessageType.BITFIELD, encode_bitfield(bits)))

    def _serve_request(self, index: int, begin: int, length: int) -> None:
        if self.am_choking or index >= len(self._bitfield) or not self._bitfield[index]:
            return
        piece = self._piece_manager.read_piece(index)
        if piece and begin + length <= len(piece):
            self.send_piece(index, begin, piece[begin : begin + length])

    def _recv_exact(self, count: int) -> Optional[bytes]:
        sock = self._sock
        if sock is None:
            return None
        buf = bytearray()
        while len(buf) < count:
            try:
                chunk = sock.recv(count - len(buf))
            except OSError:
                return None
            if not chunk:
                return None
            buf += chunk
        return bytes(buf)

    def _run(self) -> None:
        while self._connected:
            message = self.receive_message()
            if message is None:
                self._connected = False
                break
            self.handle_message(message)

    def _close_socket(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None