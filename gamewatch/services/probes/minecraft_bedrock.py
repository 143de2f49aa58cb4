import logging
import random
import struct
import time
from functools import partial
from typing import Awaitable, Callable, Optional, Tuple

from gamewatch.exceptions import ProtocolError
from gamewatch.models.server import ProbeTarget
from gamewatch.services.probes.base import GameQuery
from gamewatch.services.probes.udp import DatagramClient
from gamewatch.services.status_api import resolve_via_status_api

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0

UNCONNECTED_PING = 0x01
UNCONNECTED_PONG = 0x1C
OFFLINE_MESSAGE_MAGIC = bytes.fromhex("00ffff00fefefefefdfdfdfd12345678")
# id(1) + ping time(8) + server guid(8) + magic(16)
_PONG_HEADER_SIZE = 33

Fallback = Callable[[str, int], Awaitable[str]]


def build_unconnected_ping(client_guid: int, now_ms: Optional[int] = None) -> bytes:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return (
        bytes([UNCONNECTED_PING])
        + struct.pack(">q", now_ms)
        + OFFLINE_MESSAGE_MAGIC
        + struct.pack(">q", client_guid)
    )


def parse_unconnected_pong(packet: bytes) -> Tuple[int, int]:
    """
    Return (online, max) from a RakNet unconnected pong.

    The server id string looks like
    ``MCPE;Dedicated Server;622;1.20.40;3;10;<guid>;Bedrock level;Survival;...``
    with online and max players in fields 4 and 5.
    """
    if len(packet) < _PONG_HEADER_SIZE + 2 or packet[0] != UNCONNECTED_PONG:
        raise ProtocolError("not an unconnected pong")
    if packet[17:33] != OFFLINE_MESSAGE_MAGIC:
        raise ProtocolError("pong carries the wrong offline magic")

    (length,) = struct.unpack_from(">H", packet, _PONG_HEADER_SIZE)
    raw = packet[_PONG_HEADER_SIZE + 2 : _PONG_HEADER_SIZE + 2 + length]
    if len(raw) != length:
        raise ProtocolError("truncated server id string")

    fields = raw.decode("utf-8", errors="replace").split(";")
    if len(fields) < 6:
        raise ProtocolError(f"server id string has {len(fields)} fields, expected at least 6")
    try:
        return int(fields[4]), int(fields[5])
    except ValueError as exc:
        raise ProtocolError(f"non-numeric player counts {fields[4]!r}/{fields[5]!r}") from exc


class MinecraftBedrockQuery(GameQuery):
    """Unconnected ping probe for Bedrock Edition with the status API as fallback."""

    def __init__(
        self,
        target: ProbeTarget,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        fallback: Optional[Fallback] = None,
    ) -> None:
        self.target = target
        self._client = DatagramClient(timeout)
        self._fallback = fallback or partial(resolve_via_status_api, edition="bedrock")
        self._guid = random.getrandbits(63)

    async def connect(self) -> None:
        await self._client.open(self.target.host, self.target.port)

    async def query(self) -> str:
        host, port = self.target.host, self.target.port
        if not self._client.is_open:
            logger.warning("No socket for %s:%s, using status API fallback", host, port)
            return await self._fallback(host, port)

        try:
            self._client.send(build_unconnected_ping(self._guid))
            online, max_players = parse_unconnected_pong(await self._client.receive())
        except Exception as exc:
            logger.warning(
                "Bedrock ping failed for %s:%s: %s: %s; using status API fallback",
                host,
                port,
                type(exc).__name__,
                exc,
            )
            return await self._fallback(host, port)

        return f"{online}/{max_players}"

    def dispose(self) -> None:
        self._client.close()
