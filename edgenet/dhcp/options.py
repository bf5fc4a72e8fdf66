"""DHCP option values and option lists, with their wire encoding."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

END = 255
PAD = 0

# Upper bound on the number of options placed in a server reply.
MAX_REPLY_OPTIONS = 8


class ErrorKind(enum.Enum):
    """The ways in which DHCP data can fail to encode or decode."""

    DATA_UNDERFLOW = "Data underflow"
    BUFFER_OVERFLOW = "Buffer overflow"
    INVALID_PACKET = "Invalid packet"
    INVALID_UTF8_STR = "Invalid Utf8 string"
    INVALID_MESSAGE_TYPE = "Invalid message type"
    MISSING_COOKIE = "Missing cookie"
    INVALID_HLEN = "Invalid hlen"


class DhcpError(Exception):
    """Raised when DHCP data is malformed or does not fit its encoding."""

    def __init__(self, kind: ErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind

    def __str__(self) -> str:
        return self.kind.value


class MessageType(enum.IntEnum):
    """DHCP message type (option 53), RFC 2131 table 2 / RFC 2132 section 9.6."""

    DISCOVER = 1
    OFFER = 2
    REQUEST = 3
    DECLINE = 4
    ACK = 5
    NAK = 6
    RELEASE = 7
    INFORM = 8

    def __str__(self) -> str:
        return f"DHCP{self.name}"

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


class OptionCode(enum.IntEnum):
    """Codes of the DHCP options that have a decoded representation."""

    SUBNET_MASK = 1
    ROUTER = 3
    DOMAIN_NAME_SERVER = 6
    HOST_NAME = 12
    REQUESTED_IP_ADDRESS = 50
    IP_ADDRESS_LEASE_TIME = 51
    DHCP_MESSAGE_TYPE = 53
    SERVER_IDENTIFIER = 54
    PARAMETER_REQUEST_LIST = 55
    MESSAGE = 56
    MAXIMUM_DHCP_MESSAGE_SIZE = 57
    CLIENT_IDENTIFIER = 61
    CAPTIVE_URL = 114


_SINGLE_ADDRESS = {
    OptionCode.SUBNET_MASK,
    OptionCode.REQUESTED_IP_ADDRESS,
    OptionCode.SERVER_IDENTIFIER,
}
_ADDRESS_LIST = {OptionCode.ROUTER, OptionCode.DOMAIN_NAME_SERVER}
_TEXT = {OptionCode.HOST_NAME, OptionCode.MESSAGE, OptionCode.CAPTIVE_URL}
_RAW = {OptionCode.PARAMETER_REQUEST_LIST, OptionCode.CLIENT_IDENTIFIER}


def _as_code(code: int) -> int:
    code = int(code)
    if not 0 <= code < END:
        raise ValueError(f"option code out of range: {code}")
    try:
        return OptionCode(code)
    except ValueError:
        return code


def _bounded_int(value: Any, bits: int) -> int:
    number = int(value)
    if not 0 <= number < (1 << bits):
        raise ValueError(f"value does not fit in {bits} bits: {number}")
    return number


def _text(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected str, got {type(value).__name__}")
    return value


def _normalize(code: int, value: Any) -> Any:
    if code == OptionCode.DHCP_MESSAGE_TYPE:
        return MessageType(value)
    if code in _SINGLE_ADDRESS:
        return ipaddress.IPv4Address(value)
    if code in _ADDRESS_LIST:
        return tuple(ipaddress.IPv4Address(addr) for addr in value)
    if code in _TEXT:
        return _text(value)
    if code == OptionCode.IP_ADDRESS_LEASE_TIME:
        return _bounded_int(value, 32)
    if code == OptionCode.MAXIMUM_DHCP_MESSAGE_SIZE:
        return _bounded_int(value, 16)
    return bytes(value)


@dataclass(frozen=True)
class DhcpOption:
    """A single DHCP option: its code and its decoded value.

    The value type depends on the code: a MessageType, an IPv4Address,
    a tuple of IPv4Address, a str, an int, or bytes for raw and
    unrecognized options.
    """

    code: int
    value: Any

    def __post_init__(self) -> None:
        code = _as_code(self.code)
        object.__setattr__(self, "code", code)
        object.__setattr__(self, "value", _normalize(code, self.value))

    def payload(self) -> bytes:
        """Return the option's data bytes, without code and length."""
        code = self.code
        if code == OptionCode.DHCP_MESSAGE_TYPE:
            return bytes([int(self.value)])
        if code in _SINGLE_ADDRESS:
            return self.value.packed
        if code in _ADDRESS_LIST:
            return b"".join(addr.packed for addr in self.value)
        if code in _TEXT:
            return self.value.encode("utf-8")
        if code == OptionCode.IP_ADDRESS_LEASE_TIME:
            return self.value.to_bytes(4, "big")
        if code == OptionCode.MAXIMUM_DHCP_MESSAGE_SIZE:
            return self.value.to_bytes(2, "big")
        return self.value

    def encode(self) -> bytes:
        """Return the option as code, length and data bytes."""
        data = self.payload()
        if len(data) > 0xFF:
            raise DhcpError(ErrorKind.BUFFER_OVERFLOW)
        return bytes([int(self.code), len(data)]) + data


def _exact(body: bytes, size: int) -> bytes:
    if len(body) < size:
        raise DhcpError(ErrorKind.DATA_UNDERFLOW)
    if len(body) > size:
        raise DhcpError(ErrorKind.INVALID_PACKET)
    return body


def _utf8(body: bytes) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DhcpError(ErrorKind.INVALID_UTF8_STR) from err


def _addresses(body: bytes) -> tuple[ipaddress.IPv4Address, ...]:
    if len(body) % 4:
        raise DhcpError(ErrorKind.INVALID_PACKET)
    return tuple(
        ipaddress.IPv4Address(body[start : start + 4]) for start in range(0, len(body), 4)
    )


def _message_type(body: bytes) -> MessageType:
    (raw,) = _exact(body, 1)
    try:
        return MessageType(raw)
    except ValueError as err:
        raise DhcpError(ErrorKind.INVALID_MESSAGE_TYPE) from err


def _client_identifier(body: bytes) -> bytes:
    if len(body) < 2:
        raise DhcpError(ErrorKind.DATA_UNDERFLOW)
    return body


_DECODERS: dict[int, Callable[[bytes], Any]] = {
    OptionCode.DHCP_MESSAGE_TYPE: _message_type,
    OptionCode.SERVER_IDENTIFIER: lambda body: ipaddress.IPv4Address(_exact(body, 4)),
    OptionCode.REQUESTED_IP_ADDRESS: lambda body: ipaddress.IPv4Address(_exact(body, 4)),
    OptionCode.SUBNET_MASK: lambda body: ipaddress.IPv4Address(_exact(body, 4)),
    OptionCode.PARAMETER_REQUEST_LIST: bytes,
    OptionCode.HOST_NAME: _utf8,
    OptionCode.MESSAGE: _utf8,
    OptionCode.CAPTIVE_URL: _utf8,
    OptionCode.MAXIMUM_DHCP_MESSAGE_SIZE: lambda body: int.from_bytes(_exact(body, 2), "big"),
    OptionCode.IP_ADDRESS_LEASE_TIME: lambda body: int.from_bytes(_exact(body, 4), "big"),
    OptionCode.ROUTER: _addresses,
    OptionCode.DOMAIN_NAME_SERVER: _addresses,
    OptionCode.CLIENT_IDENTIFIER: _client_identifier,
}


def _iter_decode(data: bytes) -> Iterator[DhcpOption]:
    """Yield options from ``data`` up to the END marker, which must be present."""
    pos = 0
    while True:
        if pos >= len(data):
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        code = data[pos]
        if code == END:
            return
        if pos + 1 >= len(data):
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        length = data[pos + 1]
        start = pos + 2
        end = start + length
        if end > len(data):
            raise DhcpError(ErrorKind.DATA_UNDERFLOW)
        body = bytes(data[start:end])
        decoder = _DECODERS.get(code, bytes)
        yield DhcpOption(code, decoder(body))
        pos = end


class Options:
    """An ordered, immutable list of DHCP options."""

    _REQUEST_PARAMS = bytes(
        [OptionCode.ROUTER, OptionCode.SUBNET_MASK, OptionCode.DOMAIN_NAME_SERVER]
    )

    def __init__(self, options: Iterable[DhcpOption] = ()) -> None:
        items = tuple(options)
        for item in items:
            if not isinstance(item, DhcpOption):
                raise TypeError(f"expected DhcpOption, got {type(item).__name__}")
        self._options = items

    def __iter__(self) -> Iterator[DhcpOption]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Options):
            return NotImplemented
        return self._options == other._options

    def __hash__(self) -> int:
        return hash(self._options)

    def __repr__(self) -> str:
        return f"Options({list(self._options)!r})"

    @classmethod
    def discover(cls, requested_ip: Optional[Any] = None) -> "Options":
        """Options of a DHCPDISCOVER, optionally asking for a specific address."""
        options = [DhcpOption(OptionCode.DHCP_MESSAGE_TYPE, MessageType.DISCOVER)]
        if requested_ip is not None:
            options.append(DhcpOption(OptionCode.REQUESTED_IP_ADDRESS, requested_ip))
        return cls(options)

    @classmethod
    def request(cls, ip: Any) -> "Options":
        """Options of a DHCPREQUEST for ``ip``, asking for router, subnet and DNS."""
        return cls(
            [
                DhcpOption(OptionCode.DHCP_MESSAGE_TYPE, MessageType.REQUEST),
                DhcpOption(OptionCode.REQUESTED_IP_ADDRESS, ip),
                DhcpOption(OptionCode.PARAMETER_REQUEST_LIST, cls._REQUEST_PARAMS),
            ]
        )

    @classmethod
    def release(cls) -> "Options":
        """Options of a DHCPRELEASE."""
        return cls([DhcpOption(OptionCode.DHCP_MESSAGE_TYPE, MessageType.RELEASE)])

    @classmethod
    def decline(cls) -> "Options":
        """Options of a DHCPDECLINE."""
        return cls([DhcpOption(OptionCode.DHCP_MESSAGE_TYPE, MessageType.DECLINE)])

    def reply(
        self,
        mt: MessageType,
        server_ip: Any,
        lease_duration_secs: int,
        gateways: Sequence[Any] = (),
        subnet: Optional[Any] = None,
        dns: Sequence[Any] = (),
        captive_url: Optional[str] = None,
    ) -> "Options":
        """Build the options of a server reply to a request carrying these options.

        The reply always carries message type, server identifier and lease time;
        the parameters the request asked for follow in the order asked, unless the
        reply is a DHCPNAK.
        """
        mt = MessageType(mt)
        options = [
            DhcpOption(OptionCode.DHCP_MESSAGE_TYPE, mt),
            DhcpOption(OptionCode.SERVER_IDENTIFIER, server_ip),
            DhcpOption(OptionCode.IP_ADDRESS_LEASE_TIME, lease_duration_secs),
        ]

        requested = self.find(OptionCode.PARAMETER_REQUEST_LIST)
        if mt is MessageType.NAK or requested is None:
            return Options(options)

        for code in requested.value:
            if not any(option.code == code for option in options):
                option = self._parameter(code, gateways, subnet, dns, captive_url)
                if option is not None:
                    options.append(option)
            if len(options) == MAX_REPLY_OPTIONS:
                break

        return Options(options)

    @staticmethod
    def _parameter(
        code: int,
        gateways: Sequence[Any],
        subnet: Optional[Any],
        dns: Sequence[Any],
        captive_url: Optional[str],
    ) -> Optional[DhcpOption]:
        if code == OptionCode.ROUTER and gateways:
            return DhcpOption(OptionCode.ROUTER, gateways)
        if code == OptionCode.DOMAIN_NAME_SERVER and dns:
            return DhcpOption(OptionCode.DOMAIN_NAME_SERVER, dns)
        if code == OptionCode.SUBNET_MASK and subnet is not None:
            return DhcpOption(OptionCode.SUBNET_MASK, subnet)
        if code == OptionCode.CAPTIVE_URL and captive_url is not None:
            return DhcpOption(OptionCode.CAPTIVE_URL, captive_url)
        return None

    def find(self, code: int) -> Optional[DhcpOption]:
        """Return the first option with ``code``, or None."""
        return next((option for option in self._options if option.code == code), None)

    def message_type(self) -> Optional[MessageType]:
        """Return the DHCP message type, if present."""
        option = self.find(OptionCode.DHCP_MESSAGE_TYPE)
        return None if option is None else option.value

    def requested_ip(self) -> Optional[ipaddress.IPv4Address]:
        """Return the requested IP address, if present."""
        option = self.find(OptionCode.REQUESTED_IP_ADDRESS)
        return None if option is None else option.value

    @classmethod
    def decode(cls, data: bytes) -> "Options":
        """Decode options up to and including the END marker; trailing bytes are ignored."""
        return cls(_iter_decode(bytes(data)))

    def encode(self) -> bytes:
        """Encode the options, without the END marker."""
        return b"".join(option.encode() for option in self._options)