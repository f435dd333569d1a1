"""
IP allow-list matching.

An allow-list is a comma or newline separated set of entries, each an exact
address or a CIDR range (`address/prefixLength`). Entries that cannot be
parsed never match and never raise.
"""
import ipaddress
import re
from typing import Iterator, Optional

_ENTRY_SEPARATORS = re.compile(r"[\r\n,]+")


def split_entries(allowed: Optional[str]) -> Iterator[str]:
    if not allowed:
        return
    for entry in _ENTRY_SEPARATORS.split(allowed):
        entry = entry.strip()
        if entry:
            yield entry


def normalize_allow_list(allowed: Optional[str]) -> Optional[str]:
    """Collapse an allow-list to a single comma separated line."""
    if allowed is None:
        return None
    return ",".join(split_entries(allowed))


def _packed(address: str) -> Optional[bytes]:
    try:
        return ipaddress.ip_address(address.strip()).packed
    except ValueError:
        return None


def is_in_cidr_range(ip: str, cidr: str) -> bool:
    parts = cidr.split("/")
    if len(parts) != 2:
        return False
    network, prefix = parts[0].strip(), parts[1].strip()
    if not (prefix.isascii() and prefix.isdigit()):
        return False
    prefix_length = int(prefix)

    network_bytes = _packed(network)
    client_bytes = _packed(ip)
    if network_bytes is None or client_bytes is None:
        return False
    # IPv4 and IPv6 never match each other
    if len(network_bytes) != len(client_bytes):
        return False
    if prefix_length > len(network_bytes) * 8:
        return False

    full_bytes, remaining_bits = divmod(prefix_length, 8)
    if network_bytes[:full_bytes] != client_bytes[:full_bytes]:
        return False
    if remaining_bits:
        mask = (0xFF << (8 - remaining_bits)) & 0xFF
        return (network_bytes[full_bytes] & mask) == (client_bytes[full_bytes] & mask)
    return True


def is_in_allowed_list(ip: Optional[str], allowed: Optional[str]) -> bool:
    if not ip or not allowed:
        return False
    ip = ip.strip()
    for entry in split_entries(allowed):
        if "/" in entry:
            if is_in_cidr_range(ip, entry):
                return True
        elif entry == ip:
            return True
    return False
