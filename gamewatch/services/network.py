import re
from typing import Optional, Sequence

from gamewatch.config import Settings
from gamewatch.models.server import ProbeTarget, ServerAllocation

WILDCARD_IP = "0.0.0.0"
LOOPBACK_IP = "127.0.0.1"


def get_default_allocation(allocations: Optional[Sequence[ServerAllocation]]) -> Optional[ServerAllocation]:
    """Return the default allocation, the first one if none is marked, or None."""
    if not allocations:
        return None
    for allocation in allocations:
        if allocation.is_default:
            return allocation
    return allocations[0]


def is_internal_ip(ip: str, structure: Optional[str]) -> bool:
    """
    Check ``ip`` against an internal network pattern like ``10.0.*.*``.

    Each ``*`` stands for one numeric octet. Without a pattern nothing is
    internal.
    """
    if not structure or not ip:
        return False
    pattern = "^" + re.escape(structure).replace(r"\*", r"\d+") + "$"
    return re.match(pattern, ip) is not None


def get_display_ip(ip: str, settings: Settings) -> str:
    """IP shown to players: internal IPs as is, everything else as the external IP."""
    if is_internal_ip(ip, settings.internal_ip_structure):
        return ip
    return settings.external_server_ip or WILDCARD_IP


def resolve_query_host(ip: str, settings: Settings) -> str:
    """
    Host to send game queries to for an allocation bound to ``ip``.

    Allocations bound to a concrete address are queried on that address. A
    wildcard (0.0.0.0) or empty allocation is not a query target; it resolves
    to the display IP, and to the loopback address when no external IP is
    configured either.
    """
    if ip and ip != WILDCARD_IP:
        return ip

    display_ip = get_display_ip(ip, settings)
    if display_ip == WILDCARD_IP:
        return LOOPBACK_IP
    return display_ip


def resolve_allocation_target(
    allocations: Optional[Sequence[ServerAllocation]], settings: Settings
) -> Optional[ProbeTarget]:
    """Probe target for a panel server's default allocation, or None without allocations."""
    allocation = get_default_allocation(allocations)
    if allocation is None:
        return None
    return ProbeTarget(host=resolve_query_host(allocation.ip, settings), port=allocation.port)
