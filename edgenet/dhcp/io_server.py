"""The UDP loop of a DHCP server."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any

from edgenet.dhcp.options import DhcpError
from edgenet.dhcp.packet import Packet
from edgenet.dhcp.server import Server, ServerOptions

log = logging.getLogger(__name__)

_BROADCAST = "255.255.255.255"


def _reply_address(request: Packet, remote: Any) -> Any:
    try:
        host = ipaddress.ip_address(remote[0])
    except ValueError:
        return remote
    if host.version != 4:
        return remote
    if request.broadcast or host.is_unspecified:
        return (_BROADCAST, remote[1])
    return remote


async def run(server: Server, server_options: ServerOptions, socket: Any) -> None:
    """Answer DHCP requests arriving on ``socket`` until a socket error occurs.

    Packets that fail to decode are skipped. Replies go to the broadcast
    address when the request asked for broadcast or came from 0.0.0.0.
    The lease table lives in ``server`` and survives cancellation.
    """
    log.info(
        "Running DHCP server for addresses %s-%s with configuration %r",
        server.range_start,
        server.range_end,
        server_options,
    )

    while True:
        data, remote = await socket.receive()

        try:
            request = Packet.decode(data)
        except DhcpError as err:
            log.warning("Decoding packet returned error: %s", err)
            continue

        reply = server.handle_request(server_options, request)
        if reply is not None:
            await socket.send(_reply_address(request, remote), reply.encode())