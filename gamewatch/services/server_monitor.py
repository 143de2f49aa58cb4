import asyncio
import logging
from typing import List, Optional

from gamewatch.config import Settings, get_settings
from gamewatch.exceptions import ConnectError
from gamewatch.models.server import NOT_AVAILABLE, GameServerStatus, MonitoredServer, ProbeTarget
from gamewatch.services.network import resolve_query_host
from gamewatch.services.player_count import extract_player_count
from gamewatch.services.probes.minecraft_java import Fallback
from gamewatch.services.probes.registry import create_probe

logger = logging.getLogger(__name__)


async def query_server(
    protocol: str,
    target: ProbeTarget,
    settings: Optional[Settings] = None,
    fallback: Optional[Fallback] = None,
) -> str:
    """
    Run one probe against ``target`` and return its normalised result.

    The probe is always disposed, whichever way the query ends. A failed
    connect is logged and the probe is still asked for a result so that its
    fallback tier gets a chance. Network and protocol failures never escape:
    the worst case is 'N/A'.
    """
    probe = create_probe(protocol, target, settings=settings, fallback=fallback)
    try:
        try:
            await probe.connect()
        except ConnectError as exc:
            logger.warning("%s", exc)
        return await probe.query()
    finally:
        probe.dispose()


async def _poll(server: MonitoredServer, settings: Settings) -> GameServerStatus:
    host = resolve_query_host(server.host, settings)
    result = await query_server(
        server.protocol,
        ProbeTarget(host=host, port=server.port),
        settings=settings,
    )
    return GameServerStatus(
        name=server.display_name,
        protocol=server.protocol,
        host=host,
        port=server.port,
        result=result,
        player_count=extract_player_count(result, settings.player_count_pattern),
        is_online=result != NOT_AVAILABLE,
    )


async def get_server_statuses() -> List[GameServerStatus]:
    """
    Poll every server from Settings.monitored_servers concurrently.

    If the setting is empty or None, an empty list is returned. Results keep
    the configured order.
    """
    settings = get_settings()
    servers = settings.monitored_servers or []
    if not servers:
        return []

    return list(await asyncio.gather(*(_poll(server, settings) for server in servers)))
