"""Message stream encryption: Diffie-Hellman key exchange and RC4."""

from __future__ import annotations

import hashlib
import secrets
from typing import Optional

_P = int(
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD129024E088A67CC74"
    "020BBEA63B139B22514A08798E3404DDEF9519B3CD3A431B302B0A6DF25F1437"
    "4FE1356D6D51C245E485B576625E7EC6F44C42E9A63A36210000000000090563",
    16,
)
_G = 2
KEY_LENGTH = 96
_PRIVATE_KEY_BITS = 160
_BYTE_ORDER = "big"


def sha1(data: bytes) -> bytes:
    """The 20-byte SHA-1 digest of data."""
    return hashlib.sha1(bytes(data)).digest()


def generate_random_bytes(length: int) -> bytes:
    """Cryptographically random bytes."""
    if length < 0:
        raise ValueError("length must not be negative")
    return secrets.token_bytes(length)


class RC4:
    """The RC4 stream cipher; state carries over between calls to process."""

    def __init__(self, key: bytes) -> None:
        key = bytes(key)
        if not key:
            raise ValueError("RC4 key must not be empty")
        state = list(range(256))
        j = 0
        for i in range(256):
            j = (j + state[i] + key[i % len(key)]) & 0xFF
            state[i], state[j] = state[j], state[i]
        self._state = state
        self._i = 0
        self._j = 0

    def process(self, data: bytes) -> bytes:
        """XOR data with the next bytes of keystream."""
        state = self._state
        i, j = self._i, self._j
        out = bytearray(data)
        for pos, byte in enumerate(out):
            i = (i + 1) & 0xFF
            j = (j + state[i]) & 0xFF
            state[i], state[j] = state[j], state[i]
            out[pos] = byte ^ state[(state[i] + state[j]) & 0xFF]
        self._i, self._j = i, j
        return bytes(out)


class MSECrypto:
    """Key exchange and stream ciphers for one encrypted peer connection."""

    def __init__(self) -> None:
        self._private_value: Optional[int] = None
        self._public_value: Optional[int] = None
        self._dh_shared = bytes()
        self._encryptor: Optional[RC4] = None
        self._decryptor: Optional[RC4] = None

    def generate_dh_keypair(self) -> None:
        """Create a fresh private key and its public counterpart."""
        private = 0
        while private < 2:
            private = secrets.randbits(_PRIVATE_KEY_BITS)
        self._private_value = private
        self._public_value = pow(_G, private, _P)

    def public_key(self) -> bytes:
        """Our public key as 96 big-endian bytes."""
        if self._public_value is None:
            raise RuntimeError("no key pair has been generated")
        return self._public_value.to_bytes(KEY_LENGTH, _BYTE_ORDER)

    def compute_shared_secret(self, peer_public_key: bytes) -> bytes:
        """Derive and store the shared secret from the peer's public key."""
        if self._private_value is None:
            raise RuntimeError("no key pair has been generated")
        raw = bytes(peer_public_key)
        if not raw or len(raw) > KEY_LENGTH:
            raise ValueError("peer public key has the wrong length")
        peer = int.from_bytes(raw, _BYTE_ORDER)
        if not 1 < peer < _P - 1:
            raise ValueError("peer public key is out of range")
        agreed = pow(peer, self._private_value, _P)
        self._dh_shared = agreed.to_bytes(KEY_LENGTH, _BYTE_ORDER)
        return self._dh_shared

    @property
    def shared_secret(self) -> bytes:
        """The shared secret, or empty bytes before it is computed."""
        return self._dh_shared

    def init_rc4_encryption(self, key: bytes) -> None:
        self._encryptor = RC4(key)

    def init_rc4_decryption(self, key: bytes) -> None:
        self._decryptor = RC4(key)

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt outgoing data with the encryption stream."""
        if self._encryptor is None:
            raise RuntimeError("encryption has not been initialised")
        return self._encryptor.process(data)

    def decrypt(self, data: bytes) -> bytes:
        """Decrypt incoming data with the decryption stream."""
        if self._decryptor is None:
            raise RuntimeError("decryption has not been initialised")
        return self._decryptor.process(data)