from functools import partial
from typing import Any, Dict, Optional, Type

from gamewatch.config import Settings, get_settings
from gamewatch.models.server import ProbeTarget
from gamewatch.services.probes.base import GameQuery
from gamewatch.services.probes.minecraft_bedrock import MinecraftBedrockQuery
from gamewatch.services.probes.minecraft_java import Fallback, MinecraftJavaQuery
from gamewatch.services.probes.rcon import RconQuery
from gamewatch.services.probes.source import SourceQuery
from gamewatch.services.status_api import resolve_via_status_api

PROBES: Dict[str, Type[GameQuery]] = {
    "minecraft_java": MinecraftJavaQuery,
    "minecraft_bedrock": MinecraftBedrockQuery,
    "source": SourceQuery,
    "rcon": RconQuery,
}

_STATUS_API_EDITIONS = {
    "minecraft_java": "java",
    "minecraft_bedrock": "bedrock",
}


def create_probe(
    protocol: str,
    target: ProbeTarget,
    settings: Optional[Settings] = None,
    fallback: Optional[Fallback] = None,
) -> GameQuery:
    """
    Build the probe for ``protocol`` with its options taken from settings.

    ``fallback`` replaces the status API resolver of the Minecraft probes and
    is ignored by protocols without a fallback tier. Raises ValueError for an
    unknown protocol.
    """
    if protocol not in PROBES:
        raise ValueError(f"Unknown query protocol {protocol!r}, expected one of {sorted(PROBES)}")

    settings = settings or get_settings()
    options: Dict[str, Any] = {"timeout": settings.query_timeout}

    if protocol in _STATUS_API_EDITIONS:
        options["fallback"] = fallback or partial(
            resolve_via_status_api,
            edition=_STATUS_API_EDITIONS[protocol],
            url_template=settings.status_api_url,
            timeout=settings.query_timeout,
        )
    elif protocol == "rcon":
        options["password"] = settings.rcon_password
        options["command"] = settings.rcon_command

    return PROBES[protocol](target, **options)
