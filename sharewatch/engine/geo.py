"""Geographic distance and IP address helpers."""

import ipaddress
import math

EARTH_RADIUS_KM = 6371.0


def calculate_distance_km(
    lat1: float | None,
    lon1: float | None,
    lat2: float | None,
    lon2: float | None,
) -> float | None:
    """Great-circle distance between two points using the haversine formula.

    Returns:
        Distance in kilometers, or None if any coordinate is missing
    """
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def parse_ipv4(value: str) -> ipaddress.IPv4Address | None:
    """Parse a dotted-quad IPv4 address, None for anything else."""
    try:
        return ipaddress.IPv4Address(value.strip())
    except (ipaddress.AddressValueError, AttributeError):
        return None


def is_ip_in_cidr(ip: str, cidr: str) -> bool:
    """Check if an IPv4 address lies within an IPv4 CIDR range.

    IPv6 and malformed input never match. Host bits set in the range
    address are ignored, so ``192.168.1.7/24`` covers ``192.168.1.0/24``.
    """
    address = parse_ipv4(ip)
    if address is None or not isinstance(cidr, str) or "/" not in cidr:
        return False

    range_ip, _, prefix_str = cidr.partition("/")
    if parse_ipv4(range_ip) is None or not prefix_str.strip().isdigit():
        return False

    prefix = int(prefix_str)
    if prefix > 32:
        return False

    network = ipaddress.IPv4Network(f"{range_ip.strip()}/{prefix}", strict=False)
    return address in network


def is_private_ip(ip: str) -> bool:
    """Check if an address belongs to a private, loopback or link-local range."""
    try:
        address = ipaddress.ip_address(ip.strip())
    except (ValueError, AttributeError):
        return False
    return address.is_private or address.is_loopback or address.is_link_local
