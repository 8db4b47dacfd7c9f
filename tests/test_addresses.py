import os

import pytest

from pixelscrape.addresses import (
    ParsedUrl,
    get_network_interfaces,
    is_http_success,
    is_valid_ipv4,
    is_valid_ipv6,
    parse_http_response_code,
    parse_url,
    url_decode,
    url_encode,
)


def test_parse_url_http_defaults():
    assert parse_url("http://example.com") == ParsedUrl("http", "example.com", 80, "/")


def test_parse_url_https_with_path():
    parsed = parse_url("https://example.com/a/b?c=d")
    assert parsed.scheme == "https"
    assert parsed.port == 443
    assert parsed.host == "example.com"
    assert parsed.path == "/a/b?c=d"


def test_parse_url_explicit_port():
    parsed = parse_url("http://localhost:8080/rpc")
    assert parsed.host == "localhost"
    assert parsed.port == 8080
    assert parsed.path == "/rpc"


def test_parse_url_other_scheme_uses_port_80():
    assert parse_url("ftp://example.com/x").port == 80


def test_parse_url_without_scheme_raises():
    with pytest.raises(ValueError):
        parse_url("example.com/path")


def test_parse_url_bad_port_raises():
    with pytest.raises(ValueError):
        parse_url("http://example.com:abc/")


@pytest.mark.parametrize(
    "address",
    ["127.0.0.1", "0.0.0.0", "255.255.255.255", "192.168.1.10", "1.2.3.4."],
)
def test_valid_ipv4(address):
    assert is_valid_ipv4(address) is True


@pytest.mark.parametrize(
    "address",
    ["", "1.2.3", "1.2.3.4.5", "256.1.1.1", "01.2.3.4", "1..3.4", "a.b.c.d", ".1.2.3", "1.2.3.-4"],
)
def test_invalid_ipv4(address):
    assert is_valid_ipv4(address) is False


@pytest.mark.parametrize(
    "address",
    ["::1", "fe80::1", "2001:db8:0:0:0:0:0:1", "1:2:3:4:5:6:7:8:9::"],
)
def test_valid_ipv6(address):
    assert is_valid_ipv6(address) is True


@pytest.mark.parametrize("address", ["", "127.0.0.1", "1:2:3:4:5:6:7:8:9"])
def test_invalid_ipv6(address):
    assert is_valid_ipv6(address) is False


def test_parse_http_response_code_status_line():
    assert parse_http_response_code("HTTP/1.1 200 OK\r\n") == 200
    assert parse_http_response_code("HTTP/1.1 404 Not Found") == 404


@pytest.mark.parametrize("response", ["", "HTTP/1.1", "HTTP/1.1 200", "HTTP/1.1 abc OK"])
def test_parse_http_response_code_invalid(response):
    assert parse_http_response_code(response) == -1


def test_is_http_success_boundaries():
    assert is_http_success(200) is True
    assert is_http_success(299) is True
    assert is_http_success(199) is False
    assert is_http_success(300) is False
    assert is_http_success(-1) is False


def test_url_encode_decode_are_identity():
    text = "a b&c=d"
    assert url_encode(text) == text
    assert url_decode(url_encode(text)) == text


def test_network_interfaces_match_platform():
    names = get_network_interfaces()
    assert len(names) == 3
    if os.name == "nt":
        assert names == ["Ethernet", "Wi-Fi", "Loopback"]
    else:
        assert names == ["eth0", "wlan0", "lo"]