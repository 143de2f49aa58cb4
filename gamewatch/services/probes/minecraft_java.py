import asyncio
import io
import logging
import re
import struct
from functools import partial
from typing import Awaitable, Callable, Optional

from gamewatch.exceptions import ConnectError, ProtocolError
from gamewatch.models.server import NOT_AVAILABLE, ProbeTarget
from gamewatch.services.codec import read_string, read_varint, read_varint_async, write_string, write_varint
from gamewatch.services.probes.base import GameQuery
from gamewatch.services.status_api import resolve_via_status_api

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
# 1.16.5; servers answer status requests for any version
PROTOCOL_VERSION = 754
NEXT_STATE_STATUS = 1
MAX_FRAME_BYTES = 2 * 1024 * 1024

_PLAYERS_OBJECT_PATTERN = re.compile(r'"players":\s*\{([^}]*)')
_ONLINE_PATTERN = re.compile(r'"online":\s*(\d+)')
_MAX_PATTERN = re.compile(r'"max":\s*(\d+)')
_LOOSE_PATTERN = re.compile(r'"online":\s*(\d+).*?"max":\s*(\d+)', re.DOTALL)

Fallback = Callable[[str, int], Awaitable[str]]


def parse_status_players(status_json: str) -> str:
    """
    Pull '<online>/<max>' out of a Server List Ping status document.

    The document is matched as text: first the "online" and "max" keys of the
    "players" object in any order, then "online" followed by "max" anywhere.
    Returns 'N/A' if neither matches.
    """
    players = _PLAYERS_OBJECT_PATTERN.search(status_json)
    if players:
        online = _ONLINE_PATTERN.search(players.group(1))
        max_players = _MAX_PATTERN.search(players.group(1))
        if online and max_players:
            return f"{online.group(1)}/{max_players.group(1)}"

    match = _LOOSE_PATTERN.search(status_json)
    if not match:
        return NOT_AVAILABLE
    return f"{match.group(1)}/{match.group(2)}"


def build_handshake(host: str, port: int) -> bytes:
    payload = bytearray([0x00])
    write_varint(payload, PROTOCOL_VERSION)
    write_string(payload, host)
    payload.extend(struct.pack(">H", port))
    write_varint(payload, NEXT_STATE_STATUS)

    packet = bytearray()
    write_varint(packet, len(payload))
    packet.extend(payload)
    return bytes(packet)


# length=1, packet id=0
STATUS_REQUEST = b"\x01\x00"


class MinecraftJavaQuery(GameQuery):
    """
    Server List Ping probe for Minecraft Java Edition.

    Any failure of the direct query is answered by the status API fallback
    (mcstatus.io by default), whose result becomes the probe result.
    """

    def __init__(
        self,
        target: ProbeTarget,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        fallback: Optional[Fallback] = None,
    ) -> None:
        self.target = target
        self._timeout = timeout
        self._fallback = fallback or partial(resolve_via_status_api, edition="java")
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    async def connect(self) -> None:
        host, port = self.target.host, self.target.port
        logger.debug("Connecting to %s:%s", host, port)
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._timeout,
            )
        except (OSError, UnicodeError, asyncio.TimeoutError) as exc:
            raise ConnectError(
                f"Failed to connect to {host}:{port}: {type(exc).__name__}: {exc}"
            ) from exc
        logger.debug("Connected to %s:%s", host, port)

    async def query(self) -> str:
        host, port = self.target.host, self.target.port
        if self._reader is None or self._writer is None:
            logger.warning("No connection to %s:%s, using status API fallback", host, port)
            return await self._fallback(host, port)

        try:
            await self._write(build_handshake(host, port))
            await self._write(STATUS_REQUEST)
            status_json = await asyncio.wait_for(self._read_status(), timeout=self._timeout)
        except Exception as exc:
            logger.warning(
                "Direct query failed for %s:%s: %s: %s; using status API fallback",
                host,
                port,
                type(exc).__name__,
                exc,
            )
            return await self._fallback(host, port)

        result = parse_status_players(status_json)
        logger.debug("Direct query returned %s for %s:%s", result, host, port)
        return result

    async def _write(self, data: bytes) -> None:
        if self._writer is None:
            raise ConnectError("not connected")
        self._writer.write(data)
        await asyncio.wait_for(self._writer.drain(), timeout=self._timeout)

    async def _read_status(self) -> str:
        if self._reader is None:
            raise ConnectError("not connected")
        length = await read_varint_async(self._reader)
        if not 0 < length <= MAX_FRAME_BYTES:
            raise ProtocolError(f"invalid status frame length {length}")
        try:
            frame = await self._reader.readexactly(length)
        except asyncio.IncompleteReadError as exc:
            raise ProtocolError(
                f"truncated status frame: expected {length} bytes, got {len(exc.partial)}"
            ) from exc

        stream = io.BytesIO(frame)
        packet_id = read_varint(stream)
        if packet_id != 0x00:
            raise ProtocolError(f"unexpected status packet id {packet_id:#x}")
        return read_string(stream)

    def dispose(self) -> None:
        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None
