import asyncio
import logging
import struct
from typing import Optional, Tuple

from gamewatch.exceptions import ConnectError, ProtocolError
from gamewatch.models.server import NOT_AVAILABLE, ProbeTarget
from gamewatch.services.probes.base import GameQuery

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0

SERVERDATA_AUTH = 3
SERVERDATA_AUTH_RESPONSE = 2
SERVERDATA_EXECCOMMAND = 2
SERVERDATA_RESPONSE_VALUE = 0

AUTH_REQUEST_ID = 1
COMMAND_REQUEST_ID = 2
# id(4) + type(4) + two null bytes
_MIN_PACKET_SIZE = 10
_MAX_PACKET_SIZE = 1024 * 1024


def encode_packet(request_id: int, packet_type: int, body: str) -> bytes:
    payload = struct.pack("<ii", request_id, packet_type) + body.encode("utf-8") + b"\x00\x00"
    return struct.pack("<i", len(payload)) + payload


def decode_packet(payload: bytes) -> Tuple[int, int, str]:
    """Split a packet payload (without the size prefix) into (id, type, body)."""
    if len(payload) < _MIN_PACKET_SIZE:
        raise ProtocolError(f"RCON packet too short ({len(payload)} bytes)")
    request_id, packet_type = struct.unpack_from("<ii", payload)
    body = payload[8:].rstrip(b"\x00").decode("utf-8", errors="replace")
    return request_id, packet_type, body


class RconQuery(GameQuery):
    """
    Source RCON probe that runs a player listing command.

    The command output is returned verbatim (for example ARK's ListPlayers,
    Palworld's ShowPlayers or Factorio's /players online) and left to the
    player count extractor.
    """

    def __init__(
        self,
        target: ProbeTarget,
        password: Optional[str],
        command: str = "ListPlayers",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.target = target
        self._password = password
        self._command = command
        self._timeout = timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    async def connect(self) -> None:
        host, port = self.target.host, self.target.port
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._timeout,
            )
        except (OSError, UnicodeError, asyncio.TimeoutError) as exc:
            raise ConnectError(
                f"Failed to connect to RCON {host}:{port}: {type(exc).__name__}: {exc}"
            ) from exc

    async def query(self) -> str:
        host, port = self.target.host, self.target.port
        if self._reader is None or self._writer is None:
            logger.warning("No RCON connection to %s:%s", host, port)
            return NOT_AVAILABLE
        if not self._password:
            logger.warning("RCON password not configured, cannot query %s:%s", host, port)
            return NOT_AVAILABLE

        try:
            await asyncio.wait_for(self._authenticate(self._password), timeout=self._timeout)
            response = await asyncio.wait_for(self._execute(self._command), timeout=self._timeout)
        except Exception as exc:
            logger.warning("RCON query failed for %s:%s: %s: %s", host, port, type(exc).__name__, exc)
            return NOT_AVAILABLE

        logger.debug("RCON %r on %s:%s returned %d chars", self._command, host, port, len(response))
        return response

    async def _send(self, request_id: int, packet_type: int, body: str) -> None:
        if self._writer is None:
            raise ConnectError("RCON connection is not open")
        self._writer.write(encode_packet(request_id, packet_type, body))
        await self._writer.drain()

    async def _receive(self) -> Tuple[int, int, str]:
        if self._reader is None:
            raise ConnectError("RCON connection is not open")
        try:
            (size,) = struct.unpack("<i", await self._reader.readexactly(4))
            if not _MIN_PACKET_SIZE <= size <= _MAX_PACKET_SIZE:
                raise ProtocolError(f"invalid RCON packet size {size}")
            return decode_packet(await self._reader.readexactly(size))
        except asyncio.IncompleteReadError as exc:
            raise ProtocolError("connection closed mid-packet") from exc

    async def _authenticate(self, password: str) -> None:
        await self._send(AUTH_REQUEST_ID, SERVERDATA_AUTH, password)
        # Source servers send an empty RESPONSE_VALUE before the auth response
        while True:
            request_id, packet_type, _ = await self._receive()
            if packet_type == SERVERDATA_AUTH_RESPONSE:
                break
        if request_id == -1:
            raise ProtocolError("RCON authentication failed")

    async def _execute(self, command: str) -> str:
        await self._send(COMMAND_REQUEST_ID, SERVERDATA_EXECCOMMAND, command)
        while True:
            request_id, packet_type, body = await self._receive()
            if packet_type == SERVERDATA_RESPONSE_VALUE and request_id == COMMAND_REQUEST_ID:
                return body

    def dispose(self) -> None:
        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None
