from __future__ import annotations

import pytest
from starlette.requests import Request

from api_saver.utils.http import (
    first_forwarded_value,
    get_client_address,
    is_loopback,
    normalize_address,
    resolve_client_address,
)


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = None) -> Request:
    raw_headers = [
        (k.lower().encode("utf-8"), v.encode("utf-8")) for k, v in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": raw_headers,
        "scheme": "http",
        "server": ("example.com", 80),
        "client": client,
    }
    return Request(scope)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("203.0.113.7:51234", "203.0.113.7"),
        ("10.0.0.1:80", "10.0.0.1"),
        ("::ffff:127.0.0.1", "127.0.0.1"),
        ("::FFFF:198.51.100.4", "198.51.100.4"),
        ("[2001:db8::1]:443", "2001:db8::1"),
        ("[2001:db8::1]", "2001:db8::1"),
        ("2001:db8::1", "2001:db8::1"),
        ("fe80::1ff:fe23:4567:890a", "fe80::1ff:fe23:4567:890a"),
        ("  198.51.100.9  ", "198.51.100.9"),
        ("", ""),
        (None, ""),
        ("   ", ""),
    ],
)
def test_normalize_address(value: str | None, expected: str) -> None:
    assert normalize_address(value) == expected


def test_normalize_address_strips_control_characters() -> None:
    assert normalize_address("1.2.3.4\n") == "1.2.3.4"


def test_first_forwarded_value() -> None:
    assert first_forwarded_value("198.51.100.1, 10.0.0.2, 10.0.0.3") == "198.51.100.1"
    assert first_forwarded_value(" , 10.0.0.2") is None
    assert first_forwarded_value(None) is None


def test_edge_proxy_header_wins() -> None:
    headers = {
        "cf-connecting-ip": "203.0.113.10",
        "x-forwarded-for": "198.51.100.1",
        "x-real-ip": "192.0.2.5",
    }
    assert resolve_client_address(headers, "10.0.0.1") == "203.0.113.10"


def test_forwarded_for_leftmost_hop_wins_over_real_ip() -> None:
    headers = {"x-forwarded-for": "198.51.100.1:5555, 10.0.0.2", "x-real-ip": "192.0.2.5"}
    assert resolve_client_address(headers, "10.0.0.1") == "198.51.100.1"


def test_real_ip_before_transport() -> None:
    assert resolve_client_address({"x-real-ip": "192.0.2.5"}, "10.0.0.1") == "192.0.2.5"


def test_transport_address_fallback() -> None:
    assert resolve_client_address({}, "::ffff:10.0.0.1") == "10.0.0.1"


def test_missing_everything_is_empty() -> None:
    assert resolve_client_address({}, None) == ""


def test_get_client_address_from_request() -> None:
    request = _request({"X-Forwarded-For": "198.51.100.77, 10.0.0.1"}, ("10.0.0.1", 1234))
    assert get_client_address(request) == "198.51.100.77"


def test_get_client_address_without_client() -> None:
    assert get_client_address(_request()) == ""


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("127.0.0.1", True),
        ("127.0.0.8", True),
        ("::1", True),
        ("localhost", True),
        ("8.8.8.8", False),
        ("not-an-ip", False),
        ("", False),
    ],
)
def test_is_loopback(address: str, expected: bool) -> None:
    assert is_loopback(address) is expected
