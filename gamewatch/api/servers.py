from typing import List

from fastapi import APIRouter

from gamewatch.models.server import GameServerStatus
from gamewatch.services import server_monitor

router = APIRouter()


@router.get(
    "/status",
    response_model=List[GameServerStatus],
    summary="Game server status",
)
async def servers_status() -> List[GameServerStatus]:
    """
    Return player counts for all servers configured in Settings.monitored_servers
    (env var MONITORED_SERVERS).

    Unreachable servers are reported with result 'N/A' and is_online=false
    instead of failing the request.
    """
    return await server_monitor.get_server_statuses()
