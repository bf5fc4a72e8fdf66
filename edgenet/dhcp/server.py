"""A DHCP server that keeps a small lease table, without any transport."""

from __future__ import annotations

import enum
import ipaddress
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from edgenet.dhcp.options import MessageType, OptionCode
from edgenet.dhcp.packet import Packet

log = logging.getLogger(__name__)

DEFAULT_LEASE_DURATION_SECS = 7200
DEFAULT_SUBNET = ipaddress.IPv4Address("255.255.255.0")
DEFAULT_CAPACITY = 64

_RANGE_START_HOST = 50
_RANGE_END_HOST = 200


@dataclass(frozen=True)
class Lease:
    """An address handed out to a client hardware address until ``expires``."""

    mac: bytes
    expires: int


class ActionKind(enum.Enum):
    """What a client asks the server to do."""

    DISCOVER = "discover"
    REQUEST = "request"
    RELEASE = "release"
    DECLINE = "decline"


@dataclass(frozen=True)
class Action:
    """A client request reduced to what the server must act on."""

    kind: ActionKind
    ip: Optional[ipaddress.IPv4Address]
    mac: bytes


def _address_tuple(values: Any) -> tuple[ipaddress.IPv4Address, ...]:
    return tuple(ipaddress.IPv4Address(value) for value in values)


@dataclass
class ServerOptions:
    """The configuration a DHCP server hands out to its clients."""

    ip: ipaddress.IPv4Address
    gateways: tuple[ipaddress.IPv4Address, ...] = ()
    subnet: Optional[ipaddress.IPv4Address] = DEFAULT_SUBNET
    dns: tuple[ipaddress.IPv4Address, ...] = ()
    captive_url: Optional[str] = None
    lease_duration_secs: int = DEFAULT_LEASE_DURATION_SECS

    def __post_init__(self) -> None:
        self.ip = ipaddress.IPv4Address(self.ip)
        self.gateways = _address_tuple(self.gateways)
        self.dns = _address_tuple(self.dns)
        if self.subnet is not None:
            self.subnet = ipaddress.IPv4Address(self.subnet)
        duration = int(self.lease_duration_secs)
        if not 0 <= duration <= 0xFFFFFFFF:
            raise ValueError(f"lease duration does not fit in 32 bits: {duration}")
        self.lease_duration_secs = duration

    @classmethod
    def default_for(cls, ip: Any, include_gateway: bool = True) -> "ServerOptions":
        """Options for a server at ``ip``, optionally announcing itself as the gateway."""
        address = ipaddress.IPv4Address(ip)
        return cls(ip=address, gateways=(address,) if include_gateway else ())

    def process(self, request: Packet) -> Optional[Action]:
        """Work out what ``request`` asks of this server, or None if it is to be ignored."""
        if request.reply:
            return None

        message_type = request.options.message_type()
        if message_type is None:
            log.warning("Ignoring DHCP request, no message type found: %r", request)
            return None

        identifier = request.options.find(OptionCode.SERVER_IDENTIFIER)
        server_identifier = None if identifier is None else identifier.value

        if server_identifier is not None and server_identifier != self.ip:
            log.warning(
                "Ignoring %s request, not addressed to this server: %r", message_type, request
            )
            return None

        log.debug("Received %s request: %r", message_type, request)

        if message_type is MessageType.DISCOVER:
            return Action(ActionKind.DISCOVER, request.options.requested_ip(), request.chaddr)

        if message_type is MessageType.REQUEST:
            requested_ip = request.options.requested_ip()
            if requested_ip is None and not request.ciaddr.is_unspecified:
                requested_ip = request.ciaddr
            if requested_ip is None:
                return None
            return Action(ActionKind.REQUEST, requested_ip, request.chaddr)

        addressed_to_us = server_identifier == self.ip
        if message_type is MessageType.RELEASE and addressed_to_us:
            return Action(ActionKind.RELEASE, request.yiaddr, request.chaddr)
        if message_type is MessageType.DECLINE and addressed_to_us:
            return Action(ActionKind.DECLINE, request.yiaddr, request.chaddr)

        return None

    def offer(self, request: Packet, yiaddr: Any) -> Packet:
        """Build a DHCPOFFER of ``yiaddr`` in reply to ``request``."""
        return self._reply(request, MessageType.OFFER, ipaddress.IPv4Address(yiaddr))

    def ack_nak(self, request: Packet, ip: Optional[Any]) -> Packet:
        """Build a DHCPACK of ``ip``, or a DHCPNAK when ``ip`` is None."""
        if ip is None:
            return self._reply(request, MessageType.NAK, None)
        return self._reply(request, MessageType.ACK, ipaddress.IPv4Address(ip))

    def _reply(
        self,
        request: Packet,
        message_type: MessageType,
        ip: Optional[ipaddress.IPv4Address],
    ) -> Packet:
        options = request.options.reply(
            message_type,
            self.ip,
            self.lease_duration_secs,
            self.gateways,
            self.subnet,
            self.dns,
            self.captive_url,
        )
        reply = request.new_reply(ip, options)
        log.debug("Sending %s reply: %r", message_type, reply)
        return reply


def _monotonic_secs() -> int:
    return int(time.monotonic())


@dataclass
class Server:
    """A DHCP server handing out addresses .50 to .200 of its own /24 network.

    ``now`` returns the current time in seconds since some fixed epoch;
    ``capacity`` bounds the number of leases held at once.
    """

    range_start: ipaddress.IPv4Address
    range_end: ipaddress.IPv4Address
    now: Callable[[], int]
    capacity: int
    leases: dict[ipaddress.IPv4Address, Lease] = field(default_factory=dict)

    def __init__(
        self,
        ip: Any,
        now: Optional[Callable[[], int]] = None,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        prefix = ipaddress.IPv4Address(ip).packed[:3]
        self.range_start = ipaddress.IPv4Address(prefix + bytes([_RANGE_START_HOST]))
        self.range_end = ipaddress.IPv4Address(prefix + bytes([_RANGE_END_HOST]))
        self.now = now if now is not None else _monotonic_secs
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self.leases = {}

    def handle_request(self, server_options: ServerOptions, request: Packet) -> Optional[Packet]:
        """Process ``request``, updating the leases, and return the reply to send, if any."""
        action = server_options.process(request)
        if action is None:
            return None

        if action.kind is ActionKind.DISCOVER:
            ip = None
            if action.ip is not None and self._is_available(action.mac, action.ip):
                ip = action.ip
            if ip is None:
                ip = self._current_lease(action.mac)
            if ip is None:
                ip = self._available()
            return None if ip is None else server_options.offer(request, ip)

        if action.kind is ActionKind.REQUEST:
            now = self.now()
            granted = self._is_available(action.mac, action.ip) and self._add_lease(
                action.ip, request.chaddr, now + server_options.lease_duration_secs
            )
            return server_options.ack_nak(request, action.ip if granted else None)

        self._remove_lease(action.mac)
        return None

    def _is_available(self, mac: bytes, addr: ipaddress.IPv4Address) -> bool:
        if not self.range_start <= addr <= self.range_end:
            return False
        lease = self.leases.get(addr)
        return lease is None or lease.mac == mac or self.now() > lease.expires

    def _available(self) -> Optional[ipaddress.IPv4Address]:
        for pos in range(int(self.range_start), int(self.range_end) + 1):
            addr = ipaddress.IPv4Address(pos)
            if addr not in self.leases:
                return addr

        expired = next(
            (addr for addr, lease in self.leases.items() if self.now() > lease.expires), None
        )
        if expired is not None:
            del self.leases[expired]
        return expired

    def _current_lease(self, mac: bytes) -> Optional[ipaddress.IPv4Address]:
        return next((addr for addr, lease in self.leases.items() if lease.mac == mac), None)

    def _add_lease(self, addr: ipaddress.IPv4Address, mac: bytes, expires: int) -> bool:
        self._remove_lease(mac)
        if addr not in self.leases and len(self.leases) >= self.capacity:
            return False
        self.leases[addr] = Lease(mac=bytes(mac), expires=expires)
        return True

    def _remove_lease(self, mac: bytes) -> bool:
        addr = self._current_lease(mac)
        if addr is None:
            return False
        del self.leases[addr]
        return True