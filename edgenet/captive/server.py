"""The UDP loop of a captive-portal DNS server."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Union

from edgenet.captive.dns import InvalidMessageError, reply
from edgenet.udp import UdpSocket

log = logging.getLogger(__name__)

PORT = 53
DEFAULT_SOCKET = ("::", PORT)
DEFAULT_MAX_SIZE = 512


async def run(
    socket: Any,
    ip: Any,
    ttl: Union[timedelta, float, int],
    max_size: int = DEFAULT_MAX_SIZE,
) -> None:
    """Answer DNS requests arriving on ``socket`` with ``ip`` until an error occurs.

    Malformed requests are skipped; socket errors and replies that do not fit
    in ``max_size`` bytes are raised.
    """
    while True:
        log.debug("Waiting for data")
        request, remote = await socket.receive()
        log.debug("Received %d bytes from %s", len(request), remote)

        try:
            response = reply(request, ip, ttl, max_size)
        except InvalidMessageError:
            log.warning("Got invalid message from %s, skipping", remote)
            continue

        await socket.send(remote, response)
        log.debug("Sent %d bytes to %s", len(response), remote)


async def serve(
    local_addr: Any,
    ip: Any,
    ttl: Union[timedelta, float, int],
) -> None:
    """Bind to ``local_addr`` (for example DEFAULT_SOCKET) and run the server on it."""
    async with await UdpSocket.bind(local_addr) as socket:
        await run(socket, ip, ttl)