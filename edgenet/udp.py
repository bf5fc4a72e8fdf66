"""An asyncio UDP socket that sends and receives whole datagrams."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

_CLOSED = object()


class _Protocol(asyncio.DatagramProtocol):
    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self.queue.put_nowait((bytes(data), addr))

    def error_received(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.queue.put_nowait(exc if exc is not None else _CLOSED)


def _address(remote: Any) -> tuple:
    host, port, *rest = remote
    return (str(host), int(port), *rest)


class UdpSocket:
    """A bound UDP socket; use ``await UdpSocket.bind(...)`` to create one."""

    def __init__(self, transport: asyncio.DatagramTransport, protocol: _Protocol) -> None:
        self._transport = transport
        self._protocol = protocol
        self._closed = False

    @classmethod
    async def bind(cls, local_addr: Any, broadcast: bool = False) -> "UdpSocket":
        """Bind a socket to ``local_addr`` (host, port), optionally allowing broadcast."""
        loop = asyncio.get_running_loop()
        host, port = local_addr[0], local_addr[1]
        transport, protocol = await loop.create_datagram_endpoint(
            _Protocol,
            local_addr=(str(host), int(port)),
            allow_broadcast=broadcast,
        )
        return cls(transport, protocol)

    @property
    def local_address(self) -> Any:
        """The address the socket is bound to."""
        return self._transport.get_extra_info("sockname")

    async def receive(self) -> tuple[bytes, Any]:
        """Wait for the next datagram; return its data and the sender's address."""
        if self._closed:
            raise ConnectionError("socket is closed")
        item = await self._protocol.queue.get()
        if item is _CLOSED:
            self._protocol.queue.put_nowait(_CLOSED)
            raise ConnectionError("socket is closed")
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, remote: Any, data: bytes) -> None:
        """Send ``data`` as one datagram to ``remote``."""
        if self._closed:
            raise ConnectionError("socket is closed")
        self._transport.sendto(bytes(data), _address(remote))

    def close(self) -> None:
        """Close the socket; pending and later receives fail."""
        if not self._closed:
            self._closed = True
            self._transport.close()

    async def __aenter__(self) -> "UdpSocket":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()