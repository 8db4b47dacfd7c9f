import pytest

from pixelscrape.mse import RC4, MSECrypto, generate_random_bytes, sha1


def test_rc4_known_vector():
    assert RC4(b"Key").process(b"Plaintext") == bytes.fromhex("BBF316E8D940AF0AD3")


def test_rc4_round_trip():
    data = b"some piece data" * 10
    encrypted = RC4(b"secret").process(data)
    assert encrypted != data
    assert RC4(b"secret").process(encrypted) == data


def test_rc4_stream_is_continuous_across_calls():
    data = b"0123456789abcdef"
    whole = RC4(b"k").process(data)
    cipher = RC4(b"k")
    assert cipher.process(data[:5]) + cipher.process(data[5:]) == whole


def test_rc4_empty_key_raises():
    with pytest.raises(ValueError):
        RC4(b"")


def test_sha1_known_digest():
    assert sha1(b"abc") == bytes.fromhex("a9993e364706816aba3e25717850c26c9cd0d89d")


def test_random_bytes_length_and_errors():
    assert len(generate_random_bytes(32)) == 32
    assert generate_random_bytes(0) == b""
    with pytest.raises(ValueError):
        generate_random_bytes(-1)


def test_dh_exchange_agrees():
    alice, bob = MSECrypto(), MSECrypto()
    alice.generate_dh_keypair()
    bob.generate_dh_keypair()
    assert len(alice.public_key()) == 96
    secret_a = alice.compute_shared_secret(bob.public_key())
    secret_b = bob.compute_shared_secret(alice.public_key())
    assert secret_a == secret_b
    assert alice.shared_secret == secret_a
    assert len(secret_a) == 96


def test_public_key_requires_keypair():
    with pytest.raises(RuntimeError):
        MSECrypto().public_key()


def test_shared_secret_requires_keypair():
    with pytest.raises(RuntimeError):
        MSECrypto().compute_shared_secret(b"\x05" * 96)


@pytest.mark.parametrize("peer_key", [b"", b"\x01", b"\x00" * 96, b"\xff" * 96, b"\x05" * 97])
def test_invalid_peer_key_rejected(peer_key):
    crypto = MSECrypto()
    crypto.generate_dh_keypair()
    with pytest.raises(ValueError):
        crypto.compute_shared_secret(peer_key)


def test_encrypt_decrypt_between_peers():
    sender, receiver = MSECrypto(), MSECrypto()
    sender.init_rc4_encryption(b"keyA")
    receiver.init_rc4_decryption(b"keyA")
    message = b"BitTorrent protocol"
    assert receiver.decrypt(sender.encrypt(message)) == message
    assert receiver.decrypt(sender.encrypt(message)) == message


def test_encrypt_without_init_raises():
    crypto = MSECrypto()
    with pytest.raises(RuntimeError):
        crypto.encrypt(b"x")
    with pytest.raises(RuntimeError):
        crypto.decrypt(b"x")