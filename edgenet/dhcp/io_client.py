"""Obtaining and keeping a DHCP lease over a UDP socket."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import time
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from edgenet.dhcp.client import Client
from edgenet.dhcp.options import DhcpError, ErrorKind
from edgenet.dhcp.packet import Packet, Settings

log = logging.getLogger(__name__)

DEFAULT_SERVER_PORT = 67
DEFAULT_CLIENT_PORT = 68

BROADCAST = ipaddress.IPv4Address("255.255.255.255")

_MAX_SECS = 0xFFFF


def _server_address(ip: ipaddress.IPv4Address) -> tuple[str, int]:
    return (str(ip), DEFAULT_SERVER_PORT)


def _elapsed_secs(start: float) -> int:
    return min(int(time.monotonic() - start), _MAX_SECS)


@dataclass(frozen=True)
class NetworkInfo:
    """Network settings a DHCP server hands out beside the address itself."""

    gateway: Optional[ipaddress.IPv4Address] = None
    subnet: Optional[ipaddress.IPv4Address] = None
    dns1: Optional[ipaddress.IPv4Address] = None
    dns2: Optional[ipaddress.IPv4Address] = None
    captive_url: Optional[str] = None


@dataclass
class Lease:
    """An address leased from a DHCP server.

    ``duration`` is in seconds; ``acquired`` is a ``time.monotonic()`` reading.
    The socket used with a lease must send and receive broadcast datagrams; it
    offers ``await receive()`` returning ``(data, remote)`` and
    ``await send(remote, data)``.
    """

    ip: ipaddress.IPv4Address
    server_ip: ipaddress.IPv4Address
    duration: float
    acquired: float

    reply_timeout: ClassVar[float] = 3.0
    request_retries: ClassVar[int] = 3
    check_interval: ClassVar[float] = 60.0
    default_duration_secs: ClassVar[int] = 7200

    def __post_init__(self) -> None:
        self.ip = ipaddress.IPv4Address(self.ip)
        self.server_ip = ipaddress.IPv4Address(self.server_ip)

    @classmethod
    async def acquire(cls, client: Client, socket: Any) -> tuple["Lease", NetworkInfo]:
        """Discover a DHCP server and lease an address from it."""
        while True:
            offer = await cls._discover(client, socket)
            if offer.server_ip is None:
                raise DhcpError(ErrorKind.INVALID_PACKET)

            now = time.monotonic()
            settings = await cls._request(client, socket, offer.server_ip, offer.ip, True)
            if settings is None:
                continue
            if settings.server_ip is None:
                raise DhcpError(ErrorKind.INVALID_PACKET)

            lease_secs = settings.lease_time_secs
            lease = cls(
                ip=settings.ip,
                server_ip=settings.server_ip,
                duration=float(
                    cls.default_duration_secs if lease_secs is None else lease_secs
                ),
                acquired=now,
            )
            info = NetworkInfo(
                gateway=settings.gateway,
                subnet=settings.subnet,
                dns1=settings.dns1,
                dns2=settings.dns2,
                captive_url=settings.captive_url,
            )
            return lease, info

    async def keep(self, client: Client, socket: Any) -> None:
        """Renew the lease whenever a third of it has passed; return once a renewal fails."""
        while True:
            if time.monotonic() - self.acquired >= self.duration / 3:
                if not await self.renew(client, socket):
                    return
            else:
                await asyncio.sleep(self.check_interval)

    async def renew(self, client: Client, socket: Any) -> bool:
        """Ask the leasing server to extend the lease; return whether it did."""
        log.info("Renewing DHCP lease...")
        now = time.monotonic()
        settings = await self._request(client, socket, self.server_ip, self.ip, False)
        if settings is None:
            return False
        if settings.lease_time_secs is not None:
            self.duration = float(settings.lease_time_secs)
        self.acquired = now
        return True

    async def release(self, client: Client, socket: Any) -> None:
        """Hand the address back to the leasing server."""
        request = client.release(0, self.ip)
        await socket.send(_server_address(self.server_ip), request.encode())

    @classmethod
    async def _receive(cls, socket: Any) -> Optional[tuple[bytes, Any]]:
        try:
            return await asyncio.wait_for(socket.receive(), cls.reply_timeout)
        except asyncio.TimeoutError:
            return None

    @classmethod
    async def _discover(cls, client: Client, socket: Any) -> Settings:
        log.info("Discovering DHCP servers...")
        start = time.monotonic()

        while True:
            request, xid = client.discover(_elapsed_secs(start), None)
            await socket.send(_server_address(BROADCAST), request.encode())

            received = await cls._receive(socket)
            if received is not None:
                data, _remote = received
                reply = Packet.decode(data)
                if client.is_offer(reply, xid):
                    settings = Settings.from_packet(reply)
                    log.info(
                        "IP %s offered by DHCP server %s", settings.ip, settings.server_ip
                    )
                    return settings

            log.info("No DHCP offers received, retrying...")

    @classmethod
    async def _request(
        cls,
        client: Client,
        socket: Any,
        server_ip: ipaddress.IPv4Address,
        ip: ipaddress.IPv4Address,
        broadcast: bool,
    ) -> Optional[Settings]:
        for _ in range(cls.request_retries):
            log.info("Requesting IP %s from DHCP server %s", ip, server_ip)
            start = time.monotonic()

            request, xid = client.request(_elapsed_secs(start), ip, broadcast)
            destination = BROADCAST if broadcast else server_ip
            await socket.send(_server_address(destination), request.encode())

            received = await cls._receive(socket)
            if received is None:
                continue

            data, _remote = received
            reply = Packet.decode(data)
            if client.is_ack(reply, xid):
                log.info("IP %s leased successfully", ip)
                return Settings.from_packet(reply)
            if client.is_nak(reply, xid):
                log.info("IP %s not acknowledged", ip)
                return None

        log.warning("IP request was not replied")
        return None