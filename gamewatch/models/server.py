from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# Sentinel result meaning "no data available". Zero players is "0/<max>".
NOT_AVAILABLE = "N/A"

Protocol = Literal["minecraft_java", "minecraft_bedrock", "source", "rcon"]


class ProbeTarget(BaseModel):
    """Network endpoint of a single game server query."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1, description="Hostname or IP to query")
    port: int = Field(..., ge=0, le=65535, description="Query port")


class MonitoredServer(BaseModel):
    """A game server taken from the MONITORED_SERVERS setting."""

    protocol: Protocol = Field(
        ...,
        description="Query protocol family, selects the probe implementation",
    )
    host: str = Field(..., description="Allocation IP or hostname, may be 0.0.0.0")
    port: int = Field(..., ge=0, le=65535)
    name: Optional[str] = Field(
        None,
        description="Display name; defaults to host:port",
    )

    @property
    def display_name(self) -> str:
        return self.name or f"{self.host}:{self.port}"


class ServerAllocation(BaseModel):
    """Allocation record as delivered by the panel API client."""

    ip: str = Field("", description="Bound IP of the allocation, 0.0.0.0 for wildcard")
    port: int = Field(..., ge=0, le=65535)
    is_default: bool = Field(False, description="True for the server's primary allocation")


class GameServerStatus(BaseModel):
    """Result of one poll of a monitored game server."""

    name: str
    protocol: Protocol
    host: str = Field(..., description="Host that was actually queried")
    port: int
    result: str = Field(
        ...,
        description="Normalised probe result: 'online/max', raw listing text or 'N/A'",
    )
    player_count: int = Field(
        ...,
        ge=0,
        description="Players extracted from the result, 0 if none could be parsed",
    )
    is_online: bool = Field(
        ...,
        description="False if the server could not be queried at all",
    )
