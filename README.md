# pixelscrape

Building blocks for a BitTorrent client in plain Python, using only the
standard library.

## Modules

| Module | What it provides |
| --- | --- |
| `pixelscrape.bencode` | `encode`, `decode` and `decode_prefix` (decode one value and report how many bytes it used). Malformed input raises `BencodeError`. Decoded dictionary keys are `str`, string values are `bytes`. |
| `pixelscrape.extension` | The extension protocol. `ExtensionProtocol` builds and parses the extended handshake; `build_metadata_request`, `build_metadata_data`, `build_metadata_reject`, `build_pex_message`, `parse_metadata_message` and `parse_pex_message` handle `ut_metadata` and `ut_pex`. Malformed messages raise `ExtensionError`. |
| `pixelscrape.metadata_exchange` | `MetadataExchange` collects `ut_metadata` pieces (16 KiB each) from a peer, joins them and checks the SHA-1 against the info hash, calling an optional `on_complete` callback. |
| `pixelscrape.peer` | Peer wire protocol: `build_handshake`, `parse_handshake`, `encode_bitfield`, `decode_bitfield`, `serialize_message`, the `PeerMessage`, `PeerInfo` and `Handshake` types, and `PeerConnection` for one outgoing or accepted connection. |
| `pixelscrape.mse` | Stream encryption helpers: `RC4`, `MSECrypto` (Diffie-Hellman key exchange over the 768-bit prime with generator 2, plus RC4 streams), `sha1` and `generate_random_bytes`. |
| `pixelscrape.addresses` | `parse_url`, `is_valid_ipv4`, `is_valid_ipv6`, `parse_http_response_code`, `is_http_success`, `url_encode`, `url_decode`, `get_network_interfaces`. |
| `pixelscrape.network` | A small blocking socket client: `resolve_hostname`, `is_host_reachable`, `download_file`, `http_get`, `http_post`, `https_get`, `https_post`, `create_socket_connection`, `measure_latency`, `measure_bandwidth`. Failures raise `NetworkError`, whose `code` says what went wrong. |
| `pixelscrape.magnet` | `parse_magnet_link`, `info_hash_to_hex` and `generate_peer_id`. |
| `pixelscrape.apiutil` | `json_equals` (order-sensitive JSON comparison in which `1` and `1.0` differ) and `decode_base64_lenient`. |

## Examples

Bencoding:

```python
from pixelscrape import bencode

data = bencode.encode({"piece": 0, "msg_type": 0})
assert data == b"d8:msg_typei0e5:piecei0ee"
assert bencode.decode(data) == {"msg_type": 0, "piece": 0}
```

Magnet links and peer ids:

```python
from pixelscrape.magnet import generate_peer_id, info_hash_to_hex, parse_magnet_link

info_hash = parse_magnet_link("magnet:?xt=urn:btih:" + "ab" * 20 + "&dn=example")
assert info_hash_to_hex(info_hash) == "ab" * 20
peer_id = generate_peer_id()  # 20 bytes starting with b"-PS0001-"
```

Handshakes and messages on the peer wire:

```python
from pixelscrape.peer import (
    PeerMessage, PeerMessageType, build_handshake, encode_bitfield,
    parse_handshake, serialize_message,
)

raw = build_handshake(b"\x01" * 20, b"-PS0001-" + b"\x00" * 12)
assert parse_handshake(raw).info_hash == b"\x01" * 20
assert encode_bitfield([True, False, True]) == b"\xa0"
assert serialize_message(PeerMessage(PeerMessageType.INTERESTED)) == b"\x00\x00\x00\x01\x02"
```

`PeerConnection` needs a piece store: any object with `bitfield()` returning
a sequence of booleans and `read_piece(index)` returning the piece's bytes.
Set `on_piece` to receive `(index, begin, data)` for each arriving block.

Metadata over `ut_metadata`:

```python
from pixelscrape.extension import ExtensionProtocol, build_metadata_request
from pixelscrape.metadata_exchange import MetadataExchange

protocol = ExtensionProtocol()
payload = protocol.build_extended_handshake(6881, "PixelScrape 0.1", 0)

exchange = MetadataExchange(info_hash, on_complete=lambda info: print(len(info)))
# exchange.handle_extension_handshake(peer_handshake_payload)
# exchange.request_metadata(peer)            # peer has send_extended_message(id, payload)
# exchange.handle_metadata_message(body, peer)
# exchange.is_complete, exchange.metadata
```

Key exchange and RC4:

```python
from pixelscrape.mse import MSECrypto, RC4

a, b = MSECrypto(), MSECrypto()
a.generate_dh_keypair()
b.generate_dh_keypair()
assert a.compute_shared_secret(b.public_key()) == b.compute_shared_secret(a.public_key())

scrambled = RC4(b"key material").process(b"hello peer")
assert RC4(b"key material").process(scrambled) == b"hello peer"
```

Addresses and HTTP status lines:

```python
from pixelscrape.addresses import is_valid_ipv4, parse_http_response_code, parse_url

assert is_valid_ipv4("192.168.1.10")
assert not is_valid_ipv4("192.168.01.10")
assert parse_http_response_code("HTTP/1.1 404 Not Found") == 404
assert parse_url("https://example.com/a").port == 443
```

## Notes on the network helpers

- With the environment variable `PIXELLIB_TEST_MODE` starting with `1`, the
  network functions make no connections: `resolve_hostname` returns
  `"127.0.0.1"`, `is_host_reachable` returns `True`, `download_file` writes
  `TEST FILE`, and the HTTP functions return fixed mock responses.
- `https_get` does not verify the server certificate.
- `https_post` sends nothing; it returns a fixed description string.
- `url_encode` and `url_decode` return their input unchanged.
- `get_network_interfaces` returns a fixed list of typical names, not the
  machine's real interfaces.

## What this package does not do

It is a set of protocol pieces, not a client. There is no command to run,
no torrent manager, tracker client, DHT, piece storage, resume state, web
API server or WebSocket updates. `PeerConnection` speaks to one peer; choosing
peers, scheduling requests and writing pieces to disk are left to the caller.

## Requirements

Python 3.10 or newer, no third-party dependencies. The tests use pytest,
available through the `test` extra.