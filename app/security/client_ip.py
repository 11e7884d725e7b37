"""Client address resolution.

The TCP peer is the client unless that peer is a configured trusted
proxy.  Only then is ``X-Forwarded-For`` read, right to left, skipping
the trusted hops: the first address a trusted proxy did not add itself
is the one it actually saw.  Entries further left are client-supplied
and never used.
"""

import ipaddress
from collections.abc import Iterable
from ipaddress import IPv4Network, IPv6Network

from starlette.types import Scope

from app.config import get_settings

Networks = Iterable[IPv4Network | IPv6Network]


def _is_trusted(address: str, trusted: Networks) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(ip in network for network in trusted)


def _forwarded_for(scope: Scope) -> str | None:
    values = [
        value.decode("latin-1") for name, value in scope.get("headers", []) if name == b"x-forwarded-for"
    ]
    return ",".join(values) if values else None


def resolve_client_ip(scope: Scope, trusted: Networks | None = None) -> str | None:
    """Return the client address for an ASGI *scope*, or ``None`` if unknown."""
    if trusted is None:
        trusted = get_settings().trusted_proxy_networks
    trusted = tuple(trusted)

    client = scope.get("client")
    peer = client[0] if client else None
    if peer is None or not _is_trusted(peer, trusted):
        return peer

    forwarded = _forwarded_for(scope)
    if not forwarded:
        return peer

    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if not _is_trusted(hop, trusted):
            return hop
    # Every hop is a trusted proxy: the leftmost is the origin
    return hops[0] if hops else peer
