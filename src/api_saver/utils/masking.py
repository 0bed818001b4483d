"""Address formatting for the append-only telemetry log.

Three mutually exclusive modes are supported:

- ``raw``: the address is written verbatim.
- ``mask``: the last IPv4 octet is zeroed, IPv6 keeps its first three groups.
- ``hash``: salted SHA-256, irreversible.

The durable store always receives the raw address; only the log sink is
formatted.
"""

from __future__ import annotations

import re
from typing import Literal, get_args

from api_saver.utils.hashing import sha256_text

IpMode = Literal["raw", "mask", "hash"]

IP_MODES: tuple[str, ...] = get_args(IpMode)

_IPV4_RE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")
_IPV6_RE = re.compile(r"^[0-9a-fA-F:]+$")


def is_ipv4(address: str) -> bool:
    return bool(_IPV4_RE.match(address))


def is_ipv6(address: str) -> bool:
    return ":" in address and bool(_IPV6_RE.match(address))


def mask_ipv4(address: str) -> str:
    """Zero the last octet: ``192.168.1.123`` -> ``192.168.1.0``."""
    parts = address.split(".")
    if len(parts) != 4:
        return address
    parts[3] = "0"
    return ".".join(parts)


def mask_ipv6(address: str) -> str:
    """Keep the first three groups: ``2001:db8:abcd:12::1`` -> ``2001:db8:abcd::``."""
    groups = [group for group in address.split(":") if group]
    if len(groups) < 3:
        return address
    return ":".join(groups[:3]) + "::"


def hash_address(address: str, salt: str) -> str:
    return sha256_text(salt + address)


class AddressFormatter:
    """Format raw client addresses according to the configured mode."""

    def __init__(self, mode: str = "raw", salt: str = "") -> None:
        if mode not in IP_MODES:
            raise ValueError(
                f"Invalid ip mode {mode!r}. Use one of: {', '.join(IP_MODES)}"
            )
        self.mode = mode
        self._salt = salt

    def format(self, address: str) -> str:
        if not address:
            return ""
        if self.mode == "raw":
            return address
        if self.mode == "mask":
            if is_ipv4(address):
                return mask_ipv4(address)
            if is_ipv6(address):
                return mask_ipv6(address)
            return address
        return hash_address(address, self._salt)
