"""Address, URL and HTTP status helpers that need no network access."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

_STOI_RE = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_DIGITS = frozenset("0123456789")


@dataclass(frozen=True)
class ParsedUrl:
    """The parts of an http or https URL used to open a connection."""

    scheme: str
    host: str
    port: int
    path: str


def _leading_int(text: str) -> int:
    """Parse a leading decimal integer the way a lenient C parser would."""
    match = _STOI_RE.match(text)
    if match is None:
        raise ValueError(f"no integer in {text!r}")
    value = int(match.group(1))
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def parse_url(url: str) -> ParsedUrl:
    """Split a URL into scheme, host, port and path.

    The port defaults to 443 for https and 80 for anything else; the path
    defaults to "/". Raises ValueError when the URL has no "://" or its port
    is not a number.
    """
    scheme, sep, rest = url.partition("://")
    if not sep:
        raise ValueError("Invalid URL format")
    port = 443 if scheme == "https" else 80
    slash = rest.find("/")
    if slash < 0:
        host, path = rest, "/"
    else:
        host, path = rest[:slash], rest[slash:]
    colon = host.find(":")
    if colon >= 0:
        port = _leading_int(host[colon + 1 :])
        host = host[:colon]
    return ParsedUrl(scheme=scheme, host=host, port=port, path=path)


def is_valid_ipv4(ip_address: str) -> bool:
    """Whether the text is a dotted-quad IPv4 address without leading zeros."""
    if not ip_address:
        return False
    parts = ip_address.split(".")
    # A single trailing separator does not produce an extra, empty segment.
    if parts and parts[-1] == "":
        parts.pop()
    if len(parts) != 4:
        return False
    for segment in parts:
        if not segment:
            return False
        if len(segment) > 1 and segment[0] == "0":
            return False
        if not all(ch in _DIGITS for ch in segment):
            return False
        if int(segment) > 255:
            return False
    return True


def is_valid_ipv6(ip_address: str) -> bool:
    """A loose IPv6 check: it needs a colon, and at most 7 unless "::" is used."""
    if not ip_address or ":" not in ip_address:
        return False
    if "::" not in ip_address and ip_address.count(":") > 7:
        return False
    return True


def parse_http_response_code(response: str) -> int:
    """The status code from an HTTP status line, or -1 if there is none."""
    if not response:
        return -1
    first = response.find(" ")
    if first < 0:
        return -1
    second = response.find(" ", first + 1)
    if second < 0:
        return -1
    try:
        return _leading_int(response[first + 1 : second])
    except ValueError:
        return -1


def is_http_success(response_code: int) -> bool:
    """Whether a status code is in the 2xx range."""
    return 200 <= response_code < 300


def _require_text(value: str, operation: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{operation} expects str, got {type(value).__name__}")
    return value


def url_encode(value: str) -> str:
    """Check that value is text and return it; no escaping is applied."""
    return _require_text(value, "url_encode")


def url_decode(value: str) -> str:
    """Check that value is text and return it; no unescaping is applied."""
    return _require_text(value, "url_decode")


def get_network_interfaces() -> list[str]:
    """A fixed list of typical interface names for this platform."""
    if os.name == "nt":
        return ["Ethernet", "Wi-Fi", "Loopback"]
    return ["eth0", "wlan0", "lo"]