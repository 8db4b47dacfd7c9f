import re
import socket
import threading

import pytest

from pixelscrape import network
from pixelscrape.network import NetworkError


@pytest.fixture
def mock_mode(monkeypatch):
    monkeypatch.setenv("PIXELLIB_TEST_MODE", "1")


@pytest.fixture
def real_mode(monkeypatch):
    monkeypatch.delenv("PIXELLIB_TEST_MODE", raising=False)


def _serve_once(response: bytes):
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    received = []

    def run():
        conn, _ = server.accept()
        with conn:
            conn.settimeout(5)
            data = b""
            while b"\r\n\r\n" not in data:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                data += chunk
            head, _, body = data.partition(b"\r\n\r\n")
            match = re.search(rb"Content-Length: (\d+)", head)
            if match:
                while len(body) < int(match.group(1)):
                    chunk = conn.recv(4096)
                    if not chunk:
                        break
                    body += chunk
            received.append(head + b"\r\n\r\n" + body)
            conn.sendall(response)
        server.close()

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return server.getsockname()[1], received, thread


def _closed_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_resolve_empty_hostname():
    with pytest.raises(NetworkError) as info:
        network.resolve_hostname("")
    assert info.value.code == 1


def test_resolve_in_test_mode(mock_mode):
    assert network.resolve_hostname("anything.invalid") == "127.0.0.1"


def test_resolve_literal_address(real_mode):
    assert network.resolve_hostname("127.0.0.1") == "127.0.0.1"


def test_is_host_reachable_empty():
    with pytest.raises(NetworkError) as info:
        network.is_host_reachable("")
    assert info.value.code == 1


def test_is_host_reachable_test_mode(mock_mode):
    assert network.is_host_reachable("example.com") is True


@pytest.mark.parametrize(
    "url, destination, code",
    [("", "out.bin", 1), ("http://example.com/", "", 2), ("ftp://example.com/f", "out.bin", 6)],
)
def test_download_argument_errors(url, destination, code):
    with pytest.raises(NetworkError) as info:
        network.download_file(url, destination)
    assert info.value.code == code


def test_download_test_mode_writes_marker(mock_mode, tmp_path):
    target = tmp_path / "file.bin"
    network.download_file("http://example.com/file", str(target))
    assert target.read_bytes() == b"TEST FILE"


def test_download_test_mode_unwritable(mock_mode, tmp_path):
    target = tmp_path / "missing" / "file.bin"
    with pytest.raises(NetworkError) as info:
        network.download_file("http://example.com/file", str(target))
    assert info.value.code == 7


def test_download_from_local_server(real_mode, tmp_path):
    port, received, thread = _serve_once(b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nhello body")
    target = tmp_path / "body.txt"
    network.download_file(f"http://127.0.0.1:{port}/data/file", str(target))
    thread.join(5)
    assert target.read_bytes() == b"hello body"
    assert received[0].startswith(b"GET /data/file HTTP/1.1\r\nHost: 127.0.0.1\r\n")


def test_download_http_error(real_mode, tmp_path):
    port, _, thread = _serve_once(b"HTTP/1.1 404 Not Found\r\n\r\nmissing")
    with pytest.raises(NetworkError) as info:
        network.download_file(f"http://127.0.0.1:{port}/x", str(tmp_path / "x"))
    thread.join(5)
    assert info.value.code == 9
    assert info.value.message == "HTTP error: 404"


def test_download_connect_failure(real_mode, tmp_path):
    port = _closed_port()
    with pytest.raises(NetworkError) as info:
        network.download_file(f"http://127.0.0.1:{port}/x", str(tmp_path / "x"))
    assert info.value.code == 8


def test_http_get_empty_url():
    assert network.http_get("") == ""


def test_http_get_test_mode(mock_mode):
    response = network.http_get("http://example.com/page")
    assert response.startswith("HTTP/1.1 200 OK\r\n")
    assert response.endswith("Mock HTTP response from http://example.com/page")


def test_http_get_invalid_url(real_mode):
    with pytest.raises(NetworkError):
        network.http_get("example.com/page")


def test_http_get_local_server(real_mode):
    reply = b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"
    port, received, thread = _serve_once(reply)
    response = network.http_get(f"http://127.0.0.1:{port}/path")
    thread.join(5)
    assert response == reply.decode()
    assert received[0].startswith(b"GET /path HTTP/1.1\r\nHost: 127.0.0.1\r\n")
    assert b"User-Agent: pixelLib/1.0\r\n" in received[0]


def test_http_get_connect_failure(real_mode):
    with pytest.raises(NetworkError) as info:
        network.http_get(f"http://127.0.0.1:{_closed_port()}/")
    assert info.value.message == "Failed to connect"


def test_http_post_test_mode(mock_mode):
    payload = "a=1&b=2"
    response = network.http_post("http://example.com/api", payload)
    head, _, body = response.partition("\r\n\r\n")
    assert body == '{"success": true, "data": "a=1&b=2"}'
    length = int(re.search(r"Content-Length: (\d+)", head).group(1))
    assert length == len(payload) + 25


def test_http_post_local_server(real_mode):
    port, received, thread = _serve_once(b"HTTP/1.1 201 Created\r\n\r\nok")
    response = network.http_post(f"http://127.0.0.1:{port}/submit", "key=value")
    thread.join(5)
    assert response.startswith("HTTP/1.1 201 Created")
    assert received[0].startswith(b"POST /submit HTTP/1.1\r\n")
    assert b"Content-Length: 9\r\n" in received[0]
    assert received[0].endswith(b"\r\n\r\nkey=value")


def test_https_get_test_mode(mock_mode):
    response = network.https_get("https://example.com/")
    assert response.endswith("Mock HTTPS response from https://example.com/")


def test_https_get_empty_url():
    assert network.https_get("") == ""


def test_https_post_is_canned():
    assert (
        network.https_post("https://example.com/api", "x=1")
        == "HTTPS POST response from https://example.com/api with payload: x=1"
    )


@pytest.mark.parametrize("host, port", [("", 80), ("127.0.0.1", 0), ("127.0.0.1", 70000)])
def test_create_socket_connection_rejects_arguments(host, port):
    with pytest.raises(NetworkError):
        network.create_socket_connection(host, port)


def test_create_socket_connection_connects():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    try:
        sock = network.create_socket_connection("127.0.0.1", port)
        with sock:
            assert sock.getpeername() == ("127.0.0.1", port)
    finally:
        server.close()


def test_create_socket_connection_refused():
    with pytest.raises(NetworkError):
        network.create_socket_connection("127.0.0.1", _closed_port())


def test_measure_latency_test_mode(mock_mode):
    assert network.measure_latency("abcde", 4) == pytest.approx(50.5)


@pytest.mark.parametrize("host, count", [("", 4), ("example.com", 0), ("example.com", -1)])
def test_measure_latency_rejects_arguments(host, count):
    with pytest.raises(ValueError):
        network.measure_latency(host, count)


def test_measure_bandwidth_rejects_empty_host():
    with pytest.raises(ValueError):
        network.measure_bandwidth("")


def test_measure_bandwidth_test_mode_is_positive(mock_mode):
    assert network.measure_bandwidth("http://example.com/file") > 0