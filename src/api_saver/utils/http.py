"""Client address resolution from proxy headers."""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Mapping

from starlette.requests import Request

_IPV4_WITH_PORT_RE = re.compile(r"^(\d{1,3}(?:\.\d{1,3}){3}):\d+$")
_BRACKETED_IPV6_RE = re.compile(r"^\[([0-9a-fA-F:.]+)\](?::\d+)?$")
_MAPPED_IPV4_PREFIX = "::ffff:"

# Checked in order; the first header carrying a value wins.
EDGE_PROXY_HEADER = "cf-connecting-ip"
FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"

_LOOPBACK_NAMES = frozenset({"127.0.0.1", "::1", "localhost"})


def _strip_control_chars(value: str) -> str:
    return "".join(c for c in value if 0x20 <= ord(c) < 0x7F)


def first_forwarded_value(value: str | None) -> str | None:
    """Extract the first value from a comma-separated forwarded header.

    Used with X-Forwarded-For, X-Forwarded-Host, X-Forwarded-Proto, etc.
    """
    if not value:
        return None
    first = value.split(",", 1)[0].strip()
    return first or None


def normalize_address(value: str | None) -> str:
    """Normalize a network address taken from a header or the transport.

    Strips IPv4-mapped IPv6 prefixes and trailing ports (``a.b.c.d:port`` and
    ``[v6]:port``). Anything absent normalizes to an empty string.
    """
    if not value:
        return ""
    address = _strip_control_chars(str(value)).strip()
    if not address:
        return ""

    if address.lower().startswith(_MAPPED_IPV4_PREFIX):
        address = address[len(_MAPPED_IPV4_PREFIX):]

    match = _IPV4_WITH_PORT_RE.match(address)
    if match:
        return match.group(1)

    match = _BRACKETED_IPV6_RE.match(address)
    if match:
        return match.group(1)

    return address


def resolve_client_address(
    headers: Mapping[str, str],
    transport_address: str | None = None,
) -> str:
    """Pick the client's address from proxy headers, falling back to the socket peer.

    ``headers`` must use lower-case keys (Starlette ``Headers`` already does
    case-insensitive lookups).
    """
    edge = headers.get(EDGE_PROXY_HEADER)
    if edge:
        return normalize_address(edge)

    forwarded = first_forwarded_value(headers.get(FORWARDED_FOR_HEADER))
    if forwarded:
        return normalize_address(forwarded)

    real_ip = headers.get(REAL_IP_HEADER)
    if real_ip:
        return normalize_address(real_ip)

    return normalize_address(transport_address)


def get_client_address(request: Request) -> str:
    """Resolve the client address for a Starlette request."""
    transport = request.client.host if request.client else None
    return resolve_client_address(request.headers, transport)


def is_loopback(address: str) -> bool:
    if address in _LOOPBACK_NAMES:
        return True
    try:
        return ipaddress.ip_address(address).is_loopback
    except ValueError:
        return False
