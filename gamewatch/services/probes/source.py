import asyncio
import logging
import socket
from typing import Optional, Tuple

import a2s

from gamewatch.exceptions import ConnectError
from gamewatch.models.server import NOT_AVAILABLE, ProbeTarget
from gamewatch.services.probes.base import GameQuery

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class SourceQuery(GameQuery):
    """
    A2S_INFO probe for Source engine servers (CS2, Rust, Valheim, ARK, ...).

    ``connect`` only resolves the address; the query itself, including the
    challenge exchange, is done by ``a2s.ainfo``.
    """

    def __init__(self, target: ProbeTarget, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.target = target
        self._timeout = timeout
        self._address: Optional[Tuple[str, int]] = None

    async def connect(self) -> None:
        host, port = self.target.host, self.target.port
        loop = asyncio.get_running_loop()
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(host, port, type=socket.SOCK_DGRAM),
                timeout=self._timeout,
            )
        except (OSError, UnicodeError, asyncio.TimeoutError) as exc:
            raise ConnectError(
                f"Failed to resolve {host}:{port}: {type(exc).__name__}: {exc}"
            ) from exc
        if not infos:
            raise ConnectError(f"No address found for {host}:{port}")
        sockaddr = infos[0][4]
        self._address = (sockaddr[0], sockaddr[1])

    async def query(self) -> str:
        host, port = self.target.host, self.target.port
        if self._address is None:
            logger.warning("No address for %s:%s, skipping A2S query", host, port)
            return NOT_AVAILABLE

        try:
            info = await a2s.ainfo(self._address, timeout=self._timeout)
        except (a2s.BrokenMessageError, asyncio.TimeoutError, OSError, ValueError) as exc:
            logger.warning("A2S query failed for %s:%s: %s: %s", host, port, type(exc).__name__, exc)
            return NOT_AVAILABLE

        return f"{info.player_count}/{info.max_players}"

    def dispose(self) -> None:
        self._address = None
