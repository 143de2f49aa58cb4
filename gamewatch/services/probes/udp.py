import asyncio
from typing import Optional, Union

from gamewatch.exceptions import ConnectError


class _QueueProtocol(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.packets: "asyncio.Queue[Union[bytes, Exception]]" = asyncio.Queue()

    def datagram_received(self, data: bytes, addr) -> None:
        self.packets.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        self.packets.put_nowait(exc)


class DatagramClient:
    """
    Minimal request/response UDP client used by the Bedrock probe.

    ``receive`` raises asyncio.TimeoutError when nothing arrives in time and
    re-raises socket errors reported by the transport (e.g. ICMP port
    unreachable surfaces as ConnectionRefusedError).
    """

    def __init__(self, timeout: float) -> None:
        self._timeout = timeout
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._protocol: Optional[_QueueProtocol] = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    async def open(self, host: str, port: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            self._transport, self._protocol = await asyncio.wait_for(
                loop.create_datagram_endpoint(_QueueProtocol, remote_addr=(host, port)),
                timeout=self._timeout,
            )
        except (OSError, UnicodeError, asyncio.TimeoutError) as exc:
            raise ConnectError(
                f"Failed to open UDP socket to {host}:{port}: {type(exc).__name__}: {exc}"
            ) from exc

    def send(self, data: bytes) -> None:
        if self._transport is None:
            raise ConnectError("UDP socket is not open")
        self._transport.sendto(data)

    async def receive(self) -> bytes:
        if self._protocol is None:
            raise ConnectError("UDP socket is not open")
        item = await asyncio.wait_for(self._protocol.packets.get(), timeout=self._timeout)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._protocol = None
