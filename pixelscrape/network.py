"""Blocking network helpers: name resolution, reachability, HTTP and download checks."""

from __future__ import annotations

import math
import os
import socket
import ssl
import tempfile
import time
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from pixelscrape.addresses import ParsedUrl, parse_http_response_code, parse_url

TEST_MODE_VARIABLE = "PIXELLIB_TEST_MODE"
USER_AGENT = "pixelLib/1.0"
REACHABILITY_PORT = 80
REACHABILITY_TIMEOUT = 5.0
DOWNLOAD_TIMEOUT = 30.0
CONNECT_TIMEOUT = 3.0
_CHUNK_SIZE = 4096
_FALLBACK_SIZE = 1024 * 1024


class NetworkError(Exception):
    """A network operation failed; code identifies the kind of failure when known."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def _test_mode() -> bool:
    return os.environ.get(TEST_MODE_VARIABLE, "").startswith("1")


def _gai_message(exc: socket.gaierror) -> str:
    return f"Hostname resolution failed: {exc.strerror or exc}"


def _read_all(read: Callable[[int], bytes]) -> bytes:
    """Read until end of stream; a read error ends the stream."""
    chunks = []
    while True:
        try:
            chunk = read(_CHUNK_SIZE)
        except OSError:
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def _text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def resolve_hostname(hostname: str) -> str:
    """The first address a host name resolves to, as text."""
    if not hostname:
        raise NetworkError("Hostname is empty", 1)
    if _test_mode():
        return "127.0.0.1"
    try:
        infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise NetworkError(_gai_message(exc), 2) from exc
    if infos:
        family, _, _, _, sockaddr = infos[0]
        if family in (socket.AF_INET, socket.AF_INET6):
            return str(sockaddr[0])
    raise NetworkError("No addresses found for hostname", 3)


def is_host_reachable(host: str) -> bool:
    """Return True if a TCP connection to port 80 of the host succeeds.

    Raises NetworkError otherwise: code 3 on timeout, 4 when refused,
    5 for other failures, or the resolution error's code.
    """
    if not host:
        raise NetworkError("Host is empty", 1)
    if _test_mode():
        return True
    ip_address = resolve_hostname(host)
    is_v6 = ":" in ip_address
    family = socket.AF_INET6 if is_v6 else socket.AF_INET
    label = "IPv6" if is_v6 else "IPv4"
    try:
        socket.inet_pton(family, ip_address)
    except OSError as exc:
        raise NetworkError(f"Invalid {label} address format", 2) from exc
    try:
        sock = socket.socket(family, socket.SOCK_STREAM)
    except OSError as exc:
        raise NetworkError(f"Failed to create {label} socket", 5) from exc
    with sock:
        sock.settimeout(REACHABILITY_TIMEOUT)
        try:
            sock.connect((ip_address, REACHABILITY_PORT))
        except TimeoutError as exc:
            raise NetworkError("Connection timeout", 3) from exc
        except ConnectionRefusedError as exc:
            raise NetworkError("Connection refused", 4) from exc
        except OSError as exc:
            raise NetworkError("General network error", 5) from exc
    return True


def _status_text(head: str) -> Optional[str]:
    first = head.find(" ")
    if first < 0:
        return None
    second = head.find(" ", first + 1)
    if second < 0:
        return None
    return head[first + 1 : second]


def _stream_body(sock: socket.socket, out: BinaryIO) -> None:
    header_buf = bytearray()
    headers_done = False
    while True:
        try:
            chunk = sock.recv(_CHUNK_SIZE)
        except OSError as exc:
            raise NetworkError("Network error during download", 8) from exc
        if not chunk:
            return
        if headers_done:
            out.write(chunk)
            continue
        header_buf += chunk
        end = header_buf.find(b"\r\n\r\n")
        if end < 0:
            continue
        headers_done = True
        head = bytes(header_buf[:end]).decode("latin-1")
        status = _status_text(head)
        if status is not None and parse_http_response_code(head) >= 400:
            raise NetworkError(f"HTTP error: {status}", 9)
        out.write(bytes(header_buf[end + 4 :]))


def download_file(url: str, destination: str) -> None:
    """Fetch an http(s) URL with a plain GET and write the body to destination.

    Raises NetworkError: 1 empty URL, 2 empty destination, 6 bad URL,
    7 output file not writable, 8 network failure, 9 HTTP error status.
    """
    if not url:
        raise NetworkError("URL is empty", 1)
    if not destination:
        raise NetworkError("Destination path is empty", 2)
    if not url.startswith(("http://", "https://")):
        raise NetworkError("Invalid URL format", 6)

    if _test_mode():
        try:
            with open(destination, "wb") as out:
                out.write(b"TEST FILE")
        except OSError as exc:
            raise NetworkError("Failed to create output file", 7) from exc
        return

    parsed = parse_url(url)
    try:
        infos = socket.getaddrinfo(
            parsed.host, str(parsed.port), socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
        )
    except socket.gaierror as exc:
        raise NetworkError(_gai_message(exc), 8) from exc
    family, socktype, proto, _, address = infos[0]
    try:
        sock = socket.socket(family, socktype, proto)
    except OSError as exc:
        raise NetworkError("Failed to create socket", 8) from exc

    with sock:
        sock.settimeout(DOWNLOAD_TIMEOUT)
        try:
            sock.connect(address)
        except OSError as exc:
            raise NetworkError("Failed to connect to host", 8) from exc
        request = f"GET {parsed.path} HTTP/1.1\r\nHost: {parsed.host}\r\nConnection: close\r\n\r\n"
        try:
            sock.sendall(request.encode("latin-1"))
        except OSError as exc:
            raise NetworkError("Failed to send HTTP request", 8) from exc
        try:
            out = open(destination, "wb")
        except OSError as exc:
            raise NetworkError("Failed to create output file", 7) from exc
        with out:
            _stream_body(sock, out)


def create_socket_connection(host: str, port: int) -> socket.socket:
    """Open a TCP connection with a short timeout; raise NetworkError on failure."""
    if not host or not 0 < port <= 65535:
        raise NetworkError("Invalid host or port")
    try:
        infos = socket.getaddrinfo(host, str(port), socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise NetworkError(_gai_message(exc)) from exc
    family, socktype, proto, _, address = infos[0]
    try:
        sock = socket.socket(family, socktype, proto)
    except OSError as exc:
        raise NetworkError("Failed to create socket") from exc
    sock.settimeout(CONNECT_TIMEOUT)
    try:
        sock.connect(address)
    except OSError as exc:
        sock.close()
        raise NetworkError("Failed to connect") from exc
    return sock


def _parse_or_raise(url: str, rewrite_scheme: Optional[str] = None) -> ParsedUrl:
    if "://" not in url:
        raise NetworkError("Invalid URL format")
    if rewrite_scheme is not None:
        url = f"{rewrite_scheme}://{url.partition('://')[2]}"
    return parse_url(url)


def _exchange(parsed: ParsedUrl, request: bytes) -> str:
    try:
        sock = create_socket_connection(parsed.host, parsed.port)
    except NetworkError as exc:
        raise NetworkError("Failed to connect") from exc
    with sock:
        try:
            sock.sendall(request)
        except OSError as exc:
            raise NetworkError("Failed to send request") from exc
        response = _read_all(sock.recv)
    if not response:
        raise NetworkError("No response received")
    return _text(response)


def http_get(url: str) -> str:
    """The raw HTTP response (status line, headers and body) to a GET; "" for an empty URL."""
    if not url:
        return ""
    if _test_mode():
        return (
            "HTTP/1.1 200 OK\r\n"
            "Content-Type: text/plain\r\n"
            "Content-Length: 42\r\n"
            "\r\n"
            f"Mock HTTP response from {url}"
        )
    parsed = _parse_or_raise(url)
    request = (
        f"GET {parsed.path} HTTP/1.1\r\n"
        f"Host: {parsed.host}\r\n"
        "Connection: close\r\n"
        f"User-Agent: {USER_AGENT}\r\n"
        "\r\n"
    )
    return _exchange(parsed, request.encode("utf-8"))


def http_post(url: str, payload: str) -> str:
    """The raw HTTP response to a form-encoded POST; "" for an empty URL."""
    if not url:
        return ""
    body = payload.encode("utf-8")
    if _test_mode():
        return (
            "HTTP/1.1 200 OK\r\n"
            "Content-Type: application/json\r\n"
            f"Content-Length: {len(body) + 25}\r\n"
            "\r\n"
            f'{{"success": true, "data": "{payload}"}}'
        )
    parsed = _parse_or_raise(url)
    head = (
        f"POST {parsed.path} HTTP/1.1\r\n"
        f"Host: {parsed.host}\r\n"
        "Content-Type: application/x-www-form-urlencoded\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        f"User-Agent: {USER_AGENT}\r\n"
        "\r\n"
    )
    return _exchange(parsed, head.encode("utf-8") + body)


def _tls_context() -> ssl.SSLContext:
    # The peer certificate is not verified, matching the client's established behaviour.
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def https_get(url: str) -> str:
    """The raw response to a GET over TLS (port 443 unless given); "" for an empty URL."""
    if not url:
        return ""
    if _test_mode():
        return (
            "HTTP/1.1 200 OK\r\n"
            "Content-Type: text/plain\r\n"
            "Content-Length: 42\r\n"
            "\r\n"
            f"Mock HTTPS response from {url}"
        )
    parsed = _parse_or_raise(url, rewrite_scheme="https")
    try:
        context = _tls_context()
    except ssl.SSLError as exc:
        raise NetworkError("Failed to create SSL context") from exc
    try:
        raw = create_socket_connection(parsed.host, parsed.port)
    except NetworkError as exc:
        raise NetworkError("Failed to connect") from exc
    try:
        tls = context.wrap_socket(raw, server_hostname=parsed.host)
    except (ssl.SSLError, OSError) as exc:
        raw.close()
        raise NetworkError("SSL connection failed") from exc
    with tls:
        request = (
            f"GET {parsed.path} HTTP/1.1\r\n"
            f"Host: {parsed.host}\r\n"
            "Connection: close\r\n"
            f"User-Agent: {USER_AGENT}\r\n"
            "\r\n"
        )
        try:
            tls.sendall(request.encode("utf-8"))
        except OSError as exc:
            raise NetworkError("Failed to send request") from exc
        response = _read_all(tls.recv)
    if not response:
        raise NetworkError("No response received")
    return _text(response)


def https_post(url: str, payload: str) -> str:
    """A canned description of an HTTPS POST; no request is sent."""
    return f"HTTPS POST response from {url} with payload: {payload}"


def measure_latency(host: str, count: int = 4) -> float:
    """Mean time in milliseconds to open a TCP connection to port 80 of host."""
    if not host or count <= 0:
        raise ValueError("host must be non-empty and count positive")
    if _test_mode():
        return 50.0 + len(host) * 0.1
    total_ms = 0.0
    successes = 0
    for _ in range(count):
        start = time.perf_counter()
        try:
            sock = create_socket_connection(host, 80)
        except NetworkError:
            continue
        sock.close()
        micros = int((time.perf_counter() - start) * 1_000_000)
        total_ms += micros / 1000.0
        successes += 1
    if successes == 0:
        raise NetworkError(f"No connection to {host} succeeded")
    return total_ms / successes


def _endpoint(host: str) -> str:
    return host if "://" in host else f"http://{host}/"


def measure_bandwidth(host: str) -> float:
    """Approximate throughput in Mbit/s of downloading from host.

    When the download fails, the time to write a 1 MiB local file is
    measured instead.
    """
    if not host:
        raise ValueError("host must be non-empty")
    url = host if _test_mode() else _endpoint(host)
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / f"bandwidth_test_{int(time.time())}"
        start = time.perf_counter()
        try:
            download_file(url, str(target))
        except (NetworkError, ValueError):
            target.write_bytes(bytes(_FALLBACK_SIZE))
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        size = target.stat().st_size
    seconds = elapsed_ms / 1000.0
    if seconds == 0:
        return math.inf if size else 0.0
    return size * 8 / seconds / (1024 * 1024)