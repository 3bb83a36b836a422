"""
Device fingerprinting for session hijack detection.

The fingerprint binds a session to the browser (full user-agent) and the
network (IP subnet, not host). Carriers that reshuffle addresses inside a
subnet keep the same fingerprint; a different device or network does not.
"""
import hashlib
import ipaddress

IPV6_PREFIX_LENGTH = 64


def ip_subnet(ip: str | None) -> str:
    """
    Reduce an address to its subnet prefix.

    IPv4 keeps the first three octets, IPv6 the /64 network. Values that
    are not IP addresses (e.g. a test client host name) are kept as-is.
    """
    if not ip:
        return ""
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return ip.strip()

    if address.version == 4:
        return ".".join(str(address).split(".")[:3])

    network = ipaddress.ip_network(f"{address}/{IPV6_PREFIX_LENGTH}", strict=False)
    return str(network.network_address)


def generate_fingerprint(user_agent: str | None, ip: str | None) -> str:
    """Deterministic sha256 hex digest of user-agent + IP subnet."""
    digest = hashlib.sha256()
    digest.update((user_agent or "").encode("utf-8"))
    digest.update(ip_subnet(ip).encode("utf-8"))
    return digest.hexdigest()
