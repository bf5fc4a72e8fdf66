import ipaddress
import random

import pytest

from edgenet.dhcp.client import Client
from edgenet.dhcp.options import MessageType, OptionCode, Options
from edgenet.dhcp.packet import Packet

MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01])
OTHER_MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x02])
IP = ipaddress.IPv4Address("192.168.71.60")
SERVER = ipaddress.IPv4Address("192.168.71.1")


class SequenceRng:
    def __init__(self, *values):
        self._values = iter(values)

    def getrandbits(self, bits):
        assert bits == 32
        return next(self._values)


def server_reply(request, message_type, ip=IP):
    options = request.options.reply(message_type, SERVER, 7200)
    return request.new_reply(ip, options)


def test_discover():
    client = Client(MAC, SequenceRng(1234))
    packet, xid = client.discover(3)
    assert xid == 1234
    assert packet.xid == xid
    assert packet.secs == 3
    assert packet.reply is False
    assert packet.broadcast is True
    assert packet.chaddr[:6] == MAC
    assert packet.options == Options.discover()
    assert packet.ciaddr == ipaddress.IPv4Address(0)


def test_discover_with_requested_ip():
    client = Client(MAC, SequenceRng(5))
    packet, _ = client.discover(0, IP)
    assert packet.options.requested_ip() == IP
    assert packet.options.message_type() is MessageType.DISCOVER


def test_request():
    client = Client(MAC, SequenceRng(77))
    packet, xid = client.request(1, IP, False)
    assert xid == 77
    assert packet.broadcast is False
    assert packet.options == Options.request(IP)
    assert packet.ciaddr == ipaddress.IPv4Address(0)
    assert packet.options.find(OptionCode.PARAMETER_REQUEST_LIST) is not None


def test_release_and_decline():
    client = Client(MAC, SequenceRng(8, 9))
    release = client.release(0, IP)
    assert release.xid == 8
    assert release.ciaddr == IP
    assert release.yiaddr == IP
    assert release.broadcast is False
    assert release.options.message_type() is MessageType.RELEASE

    decline = client.decline(0, IP)
    assert decline.xid == 9
    assert decline.options.message_type() is MessageType.DECLINE


def test_offer_ack_nak_recognition():
    client = Client(MAC, SequenceRng(100, 200))
    discover, xid = client.discover()
    offer = Packet.decode(server_reply(discover, MessageType.OFFER).encode())
    assert client.is_offer(offer, xid)
    assert not client.is_ack(offer, xid)
    assert not client.is_nak(offer, xid)

    request, xid = client.request(0, IP, True)
    ack = server_reply(request, MessageType.ACK)
    nak = server_reply(request, MessageType.NAK, ip=None)
    assert client.is_ack(ack, xid)
    assert not client.is_offer(ack, xid)
    assert client.is_nak(nak, xid)
    assert not client.is_ack(nak, xid)


def test_reply_not_for_us():
    client = Client(MAC, SequenceRng(100))
    discover, xid = client.discover()
    offer = server_reply(discover, MessageType.OFFER)
    assert not client.is_offer(offer, xid + 1)
    assert not client.is_offer(discover, xid)
    assert not Client(OTHER_MAC).is_offer(offer, xid)


def test_is_bootp_reply_for_us_without_expected_types():
    client = Client(MAC, SequenceRng(3))
    discover, xid = client.discover()
    reply = discover.new_reply(IP, Options())
    assert client.is_bootp_reply_for_us(reply, xid, None) is True
    assert client.is_bootp_reply_for_us(reply, xid, [MessageType.OFFER]) is False
    assert client.is_bootp_reply_for_us(discover, xid, None) is False


def test_is_bootp_reply_for_us_any_of_types():
    client = Client(MAC, SequenceRng(3))
    discover, xid = client.discover()
    ack = server_reply(discover, MessageType.ACK)
    assert client.is_bootp_reply_for_us(ack, xid, [MessageType.OFFER, MessageType.ACK])
    assert not client.is_bootp_reply_for_us(ack, xid, [])


def test_random_rng_gives_matching_xid():
    client = Client(MAC, random.Random(7))
    packet, xid = client.discover()
    assert 0 <= xid < 1 << 32
    assert packet.xid == xid

    default = Client(MAC)
    packet, xid = default.request(0, IP, True)
    assert packet.xid == xid


def test_invalid_mac():
    with pytest.raises(ValueError):
        Client(bytes(7))