"""BOOTP/DHCP packets and the client settings carried in a server reply."""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass, field
from typing import Any, Optional

from edgenet.dhcp.options import (
    END,
    PAD,
    DhcpError,
    ErrorKind,
    MessageType,
    OptionCode,
    Options,
)

COOKIE = bytes([99, 130, 83, 99])

BOOT_REQUEST = 1
BOOT_REPLY = 2

SERVER_NAME_AND_FILE_NAME = 64 + 128
MIN_PACKET_LEN = 272

_BROADCAST_FLAG = 128
_HTYPE_ETHERNET = 1
_HLEN = 6

# op, htype, hlen, hops, xid, secs, flags, ciaddr, yiaddr, siaddr, giaddr, chaddr
_FIXED = struct.Struct(">BBBBIHH4s4s4s4s16s")
_COOKIE_OFFSET = _FIXED.size + SERVER_NAME_AND_FILE_NAME
_OPTIONS_OFFSET = _COOKIE_OFFSET + len(COOKIE)

UNSPECIFIED = ipaddress.IPv4Address(0)


def _mac(value: Any) -> bytes:
    mac = bytes(value)
    if len(mac) != 6:
        raise ValueError(f"a MAC address has 6 bytes, got {len(mac)}")
    return mac


def _check_range(name: str, value: int, bits: int) -> int:
    number = int(value)
    if not 0 <= number < (1 << bits):
        raise ValueError(f"{name} does not fit in {bits} bits: {number}")
    return number


@dataclass(frozen=True)
class Packet:
    """A BOOTP request or reply with its DHCP options."""

    reply: bool
    hops: int = 0
    xid: int = 0
    secs: int = 0
    broadcast: bool = False
    ciaddr: ipaddress.IPv4Address = UNSPECIFIED
    yiaddr: ipaddress.IPv4Address = UNSPECIFIED
    siaddr: ipaddress.IPv4Address = UNSPECIFIED
    giaddr: ipaddress.IPv4Address = UNSPECIFIED
    chaddr: bytes = bytes(16)
    options: Options = field(default_factory=Options)

    def __post_init__(self) -> None:
        setattr_ = object.__setattr__
        setattr_(self, "reply", bool(self.reply))
        setattr_(self, "broadcast", bool(self.broadcast))
        setattr_(self, "hops", _check_range("hops", self.hops, 8))
        setattr_(self, "xid", _check_range("xid", self.xid, 32))
        setattr_(self, "secs", _check_range("secs", self.secs, 16))
        for name in ("ciaddr", "yiaddr", "siaddr", "giaddr"):
            setattr_(self, name, ipaddress.IPv4Address(getattr(self, name)))
        chaddr = bytes(self.chaddr)
        if len(chaddr) != 16:
            raise ValueError(f"chaddr has 16 bytes, got {len(chaddr)}")
        setattr_(self, "chaddr", chaddr)
        if not isinstance(self.options, Options):
            setattr_(self, "options", Options(self.options))

    @classmethod
    def new_request(
        cls,
        mac: Any,
        xid: int,
        secs: int,
        our_ip: Optional[Any],
        broadcast: bool,
        options: Options,
    ) -> "Packet":
        """Build a client request from ``mac``; ``our_ip`` fills ciaddr and yiaddr."""
        ip = UNSPECIFIED if our_ip is None else ipaddress.IPv4Address(our_ip)
        return cls(
            reply=False,
            hops=0,
            xid=xid,
            secs=secs,
            broadcast=broadcast,
            ciaddr=ip,
            yiaddr=ip,
            siaddr=UNSPECIFIED,
            giaddr=UNSPECIFIED,
            chaddr=_mac(mac) + bytes(10),
            options=options,
        )

    def new_reply(self, ip: Optional[Any], options: Options) -> "Packet":
        """Build the server reply to this request, offering or assigning ``ip``."""
        ciaddr = UNSPECIFIED
        if ip is not None and any(
            option.code == OptionCode.DHCP_MESSAGE_TYPE and option.value is MessageType.REQUEST
            for option in self.options
        ):
            ciaddr = self.ciaddr

        return Packet(
            reply=True,
            hops=0,
            xid=self.xid,
            secs=0,
            broadcast=self.broadcast,
            ciaddr=ciaddr,
            yiaddr=UNSPECIFIED if ip is None else ip,
            siaddr=UNSPECIFIED,
            giaddr=self.giaddr,
            chaddr=self.chaddr,
            options=options,
        )

    def is_for_us(self, mac: Any, xid: int) -> bool:
        """Whether this is a reply to the request ``xid`` sent from ``mac``."""
        return (
            self.chaddr[:6] == _mac(mac)
            and self.chaddr[6:] == bytes(10)
            and self.xid == xid
            and self.reply
        )

    @classmethod
    def decode(cls, data: bytes) -> "Packet":
        """Parse a packet from its wire form."""
        data = bytes(data)
        if len(data) < 3:
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        if data[2] != _HLEN:
            raise DhcpError(ErrorKind.INVALID_HLEN)
        if len(data) < _OPTIONS_OFFSET:
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)

        (op, _htype, _hlen, hops, xid, secs, flags, ciaddr, yiaddr, siaddr, giaddr, chaddr) = (
            _FIXED.unpack_from(data)
        )

        if data[_COOKIE_OFFSET:_OPTIONS_OFFSET] != COOKIE:
            raise DhcpError(ErrorKind.MISSING_COOKIE)

        return cls(
            reply=op == BOOT_REPLY,
            hops=hops,
            xid=xid,
            secs=secs,
            broadcast=bool(flags & _BROADCAST_FLAG),
            ciaddr=ipaddress.IPv4Address(ciaddr),
            yiaddr=ipaddress.IPv4Address(yiaddr),
            siaddr=ipaddress.IPv4Address(siaddr),
            giaddr=ipaddress.IPv4Address(giaddr),
            chaddr=chaddr,
            options=Options.decode(data[_OPTIONS_OFFSET:]),
        )

    def encode(self) -> bytes:
        """Return the wire form, padded to at least 272 bytes."""
        header = _FIXED.pack(
            BOOT_REPLY if self.reply else BOOT_REQUEST,
            _HTYPE_ETHERNET,
            _HLEN,
            self.hops,
            self.xid,
            self.secs,
            _BROADCAST_FLAG if self.broadcast else 0,
            self.ciaddr.packed,
            self.yiaddr.packed,
            self.siaddr.packed,
            self.giaddr.packed,
            self.chaddr,
        )
        wire = (
            header
            + bytes(SERVER_NAME_AND_FILE_NAME)
            + COOKIE
            + self.options.encode()
            + bytes([END])
        )
        if len(wire) < MIN_PACKET_LEN:
            wire += bytes([PAD]) * (MIN_PACKET_LEN - len(wire))
        return wire


@dataclass(frozen=True)
class Settings:
    """Network settings a client takes from a server's offer or acknowledgement."""

    ip: ipaddress.IPv4Address
    server_ip: Optional[ipaddress.IPv4Address] = None
    lease_time_secs: Optional[int] = None
    gateway: Optional[ipaddress.IPv4Address] = None
    subnet: Optional[ipaddress.IPv4Address] = None
    dns1: Optional[ipaddress.IPv4Address] = None
    dns2: Optional[ipaddress.IPv4Address] = None
    captive_url: Optional[str] = None

    @classmethod
    def from_packet(cls, packet: Packet) -> "Settings":
        """Collect the settings carried by ``packet``."""
        options = packet.options

        def value(code: int) -> Any:
            option = options.find(code)
            return None if option is None else option.value

        def nth_address(code: int, index: int) -> Optional[ipaddress.IPv4Address]:
            return next(
                (
                    option.value[index]
                    for option in options
                    if option.code == code and len(option.value) > index
                ),
                None,
            )

        return cls(
            ip=packet.yiaddr,
            server_ip=value(OptionCode.SERVER_IDENTIFIER),
            lease_time_secs=value(OptionCode.IP_ADDRESS_LEASE_TIME),
            gateway=nth_address(OptionCode.ROUTER, 0),
            subnet=value(OptionCode.SUBNET_MASK),
            dns1=nth_address(OptionCode.DOMAIN_NAME_SERVER, 0),
            dns2=nth_address(OptionCode.DOMAIN_NAME_SERVER, 1),
            captive_url=value(OptionCode.CAPTIVE_URL),
        )