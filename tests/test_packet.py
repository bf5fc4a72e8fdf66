import ipaddress

import pytest

from edgenet.dhcp.options import (
    DhcpError,
    DhcpOption,
    ErrorKind,
    MessageType,
    OptionCode,
    Options,
)
from edgenet.dhcp.packet import COOKIE, MIN_PACKET_LEN, Packet, Settings

MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01])
OTHER_MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x02])
IP = ipaddress.IPv4Address("192.168.71.60")
SERVER = ipaddress.IPv4Address("192.168.71.1")


def test_request_wire_layout():
    packet = Packet.new_request(MAC, 0x01020304, 5, None, False, Options.discover())
    wire = packet.encode()
    assert len(wire) == MIN_PACKET_LEN
    assert wire[:4] == bytes([1, 1, 6, 0])
    assert wire[4:8] == (0x01020304).to_bytes(4, "big")
    assert wire[8:10] == (5).to_bytes(2, "big")
    assert wire[28:34] == MAC
    assert wire[236:240] == COOKIE
    assert wire[240:243] == bytes(
        [OptionCode.DHCP_MESSAGE_TYPE, 1, MessageType.DISCOVER]
    )
    assert wire[243] == 255
    assert set(wire[244:]) == {0}


def test_reply_op_byte():
    request = Packet.new_request(MAC, 9, 0, None, False, Options.discover())
    reply = request.new_reply(IP, Options.discover())
    assert reply.encode()[0] == 2
    assert request.encode()[0] == 1


def test_round_trip():
    packet = Packet(
        reply=True,
        hops=3,
        xid=0xDEADBEEF,
        secs=17,
        broadcast=True,
        ciaddr="10.0.0.5",
        yiaddr=IP,
        siaddr=SERVER,
        giaddr="10.0.0.254",
        chaddr=MAC + bytes(10),
        options=Options.request(IP).reply(
            MessageType.ACK, SERVER, 3600, [SERVER], "255.255.255.0", [SERVER]
        ),
    )
    decoded = Packet.decode(packet.encode())
    assert decoded == packet


def test_broadcast_flag_encoding():
    packet = Packet.new_request(MAC, 1, 0, None, True, Options.discover())
    wire = packet.encode()
    assert wire[10:12] == (128).to_bytes(2, "big")
    assert Packet.decode(wire).broadcast is True

    other = bytearray(wire)
    other[10:12] = bytes([0x80, 0x00])
    assert Packet.decode(bytes(other)).broadcast is False


def test_long_options_not_truncated():
    options = Options([DhcpOption(OptionCode.MESSAGE, "m" * 200)])
    packet = Packet.new_request(MAC, 1, 0, None, False, options)
    wire = packet.encode()
    assert len(wire) == 240 + len(options.encode()) + 1
    assert wire[-1] == 255
    assert Packet.decode(wire).options == options


def test_decode_short_data():
    with pytest.raises(DhcpError) as err:
        Packet.decode(bytes([1, 1]))
    assert err.value.kind is ErrorKind.DATA_UNDERFLOW

    wire = Packet.new_request(MAC, 1, 0, None, False, Options.discover()).encode()
    with pytest.raises(DhcpError) as err:
        Packet.decode(wire[:100])
    assert err.value.kind is ErrorKind.DATA_UNDERFLOW


def test_decode_invalid_hlen():
    wire = bytearray(Packet.new_request(MAC, 1, 0, None, False, Options.discover()).encode())
    wire[2] = 8
    with pytest.raises(DhcpError) as err:
        Packet.decode(bytes(wire))
    assert err.value.kind is ErrorKind.INVALID_HLEN


def test_decode_missing_cookie():
    wire = bytearray(Packet.new_request(MAC, 1, 0, None, False, Options.discover()).encode())
    wire[236] = 0
    with pytest.raises(DhcpError) as err:
        Packet.decode(bytes(wire))
    assert err.value.kind is ErrorKind.MISSING_COOKIE


def test_decode_missing_end():
    wire = Packet.new_request(MAC, 1, 0, None, False, Options.discover()).encode()
    with pytest.raises(DhcpError) as err:
        Packet.decode(wire[:243])
    assert err.value.kind is ErrorKind.DATA_UNDERFLOW


def test_new_request_addresses():
    packet = Packet.new_request(MAC, 7, 0, IP, False, Options.release())
    assert packet.ciaddr == IP
    assert packet.yiaddr == IP
    assert packet.chaddr == MAC + bytes(10)
    assert packet.reply is False

    blank = Packet.new_request(MAC, 7, 0, None, False, Options.release())
    assert blank.ciaddr == ipaddress.IPv4Address(0)
    assert blank.yiaddr == ipaddress.IPv4Address(0)


def test_new_reply_copies_ciaddr_only_for_requests():
    request = Packet(
        reply=False,
        xid=42,
        secs=9,
        ciaddr=IP,
        giaddr="10.0.0.254",
        chaddr=MAC + bytes(10),
        options=Options.request(IP),
    )
    reply = request.new_reply(IP, Options.release())
    assert reply.reply is True
    assert reply.ciaddr == IP
    assert reply.yiaddr == IP
    assert reply.xid == 42
    assert reply.secs == 0
    assert reply.giaddr == request.giaddr
    assert reply.chaddr == request.chaddr

    nak = request.new_reply(None, Options.release())
    assert nak.ciaddr == ipaddress.IPv4Address(0)
    assert nak.yiaddr == ipaddress.IPv4Address(0)

    discover = Packet(reply=False, ciaddr=IP, chaddr=MAC + bytes(10), options=Options.discover())
    assert discover.new_reply(IP, Options.release()).ciaddr == ipaddress.IPv4Address(0)


def test_is_for_us():
    request = Packet.new_request(MAC, 11, 0, None, False, Options.discover())
    reply = request.new_reply(IP, Options.discover())
    assert reply.is_for_us(MAC, 11)
    assert not reply.is_for_us(MAC, 12)
    assert not reply.is_for_us(OTHER_MAC, 11)
    assert not request.is_for_us(MAC, 11)

    dirty = Packet(reply=True, xid=11, chaddr=MAC + bytes([1]) + bytes(9))
    assert not dirty.is_for_us(MAC, 11)


def test_settings_from_packet():
    options = Options(
        [
            DhcpOption(OptionCode.DHCP_MESSAGE_TYPE, MessageType.ACK),
            DhcpOption(OptionCode.SERVER_IDENTIFIER, SERVER),
            DhcpOption(OptionCode.IP_ADDRESS_LEASE_TIME, 7200),
            DhcpOption(OptionCode.ROUTER, []),
            DhcpOption(OptionCode.ROUTER, ["10.0.0.1", "10.0.0.2"]),
            DhcpOption(OptionCode.SUBNET_MASK, "255.255.255.0"),
            DhcpOption(OptionCode.DOMAIN_NAME_SERVER, ["8.8.8.8", "8.8.4.4"]),
            DhcpOption(OptionCode.CAPTIVE_URL, "http://portal.example.com/"),
        ]
    )
    packet = Packet(reply=True, yiaddr=IP, options=options)
    settings = Settings.from_packet(Packet.decode(packet.encode()))
    assert settings == Settings(
        ip=IP,
        server_ip=SERVER,
        lease_time_secs=7200,
        gateway=ipaddress.IPv4Address("10.0.0.1"),
        subnet=ipaddress.IPv4Address("255.255.255.0"),
        dns1=ipaddress.IPv4Address("8.8.8.8"),
        dns2=ipaddress.IPv4Address("8.8.4.4"),
        captive_url="http://portal.example.com/",
    )


def test_settings_missing_values():
    settings = Settings.from_packet(Packet(reply=True, yiaddr=IP, options=Options.discover()))
    assert settings == Settings(ip=IP)


def test_invalid_fields_rejected():
    with pytest.raises(ValueError):
        Packet(reply=False, chaddr=bytes(6))
    with pytest.raises(ValueError):
        Packet.new_request(bytes(5), 1, 0, None, False, Options.discover())
    with pytest.raises(ValueError):
        Packet(reply=False, secs=1 << 16)