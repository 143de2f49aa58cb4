from typing import List, Optional
from pydantic import BaseModel, Field
import os
from functools import lru_cache

from gamewatch.models.server import MonitoredServer


def _parse_monitored_servers(raw: str) -> Optional[List[MonitoredServer]]:
    """
    Parse MONITORED_SERVERS entries of the form ``protocol:host:port[:name]``.

    Entries are comma separated. A malformed entry raises ValueError, an
    unknown protocol raises a pydantic ValidationError.
    """
    servers: List[MonitoredServer] = []
    for entry in (item.strip() for item in raw.split(",")):
        if not entry:
            continue
        parts = entry.split(":", 3)
        if len(parts) < 3:
            raise ValueError(
                f"Invalid MONITORED_SERVERS entry {entry!r}, expected protocol:host:port[:name]"
            )
        protocol, host, port = parts[0], parts[1], parts[2]
        name = parts[3] if len(parts) == 4 else None
        servers.append(
            MonitoredServer(protocol=protocol, host=host, port=int(port), name=name)
        )
    return servers or None


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


class Settings(BaseModel):
    # Host metrics (node-exporter)
    host_metrics_url: str = Field(
        default="http://node-exporter:9100/metrics",
        description="Prometheus text endpoint of node-exporter",
    )
    metrics_cache_ttl: float = Field(
        default=1.0,
        ge=0,
        description="Seconds a fetched metrics snapshot is served from cache",
    )

    # Game server probes
    query_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Timeout in seconds for connect, read and write of a single probe",
    )
    status_api_url: str = Field(
        default="https://api.mcstatus.io/v2/status/{edition}/{host}:{port}",
        description="Fallback status API; {edition}, {host} and {port} are substituted",
    )
    monitored_servers: Optional[List[MonitoredServer]] = Field(
        default=None,
        description="Servers to poll, from MONITORED_SERVERS",
    )
    rcon_password: Optional[str] = Field(
        default=None,
        description="Password for servers queried via RCON",
    )
    rcon_command: str = Field(
        default="ListPlayers",
        description="RCON command that lists online players, e.g. ShowPlayers for Palworld",
    )
    player_count_pattern: Optional[str] = Field(
        default=None,
        description="Custom regex tried last when extracting a player count",
    )

    # Query host resolution for panel allocations
    internal_ip_structure: Optional[str] = Field(
        default=None,
        description="Internal network pattern, '*' matches one octet, e.g. 10.0.*.*",
    )
    external_server_ip: Optional[str] = Field(
        default=None,
        description="Public IP shown for servers outside the internal network",
    )

    log_level: str = Field(default="INFO", description="Log level of the gamewatch logger")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host_metrics_url=os.getenv("HOST_METRICS_URL") or "http://node-exporter:9100/metrics",
            metrics_cache_ttl=float(os.getenv("METRICS_CACHE_TTL", "1.0")),
            query_timeout=float(os.getenv("QUERY_TIMEOUT", "5.0")),
            status_api_url=os.getenv("STATUS_API_URL")
            or "https://api.mcstatus.io/v2/status/{edition}/{host}:{port}",
            monitored_servers=_parse_monitored_servers(os.getenv("MONITORED_SERVERS", "")),
            rcon_password=_optional_env("RCON_PASSWORD"),
            rcon_command=os.getenv("RCON_COMMAND") or "ListPlayers",
            player_count_pattern=_optional_env("PLAYER_COUNT_PATTERN"),
            internal_ip_structure=_optional_env("INTERNAL_IP_STRUCTURE"),
            external_server_ip=_optional_env("EXTERNAL_SERVER_IP"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
