"""BitTorrent protocol pieces: bencoding, peer wire, extensions, metadata exchange, encryption and network helpers."""

__version__ = "0.1.0"

__all__ = [
    "addresses",
    "apiutil",
    "bencode",
    "extension",
    "magnet",
    "metadata_exchange",
    "mse",
    "network",
    "peer",
]