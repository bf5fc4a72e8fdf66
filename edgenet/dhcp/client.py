"""A DHCP client that builds requests and recognises replies, without any transport."""

from __future__ import annotations

import random
from typing import Any, Iterable, Optional

from edgenet.dhcp.options import MessageType, Options
from edgenet.dhcp.packet import Packet


class Client:
    """Generates BOOTP requests for one MAC address and checks replies to them.

    ``rng`` is any object with a ``getrandbits`` method, such as ``random.Random``;
    it supplies the transaction ids.
    """

    def __init__(self, mac: Any, rng: Optional[Any] = None) -> None:
        mac = bytes(mac)
        if len(mac) != 6:
            raise ValueError(f"a MAC address has 6 bytes, got {len(mac)}")
        self.mac = mac
        self.rng = rng if rng is not None else random.SystemRandom()

    def discover(self, secs: int = 0, ip: Optional[Any] = None) -> tuple[Packet, int]:
        """Build a broadcast DHCPDISCOVER; return it with its transaction id."""
        return self.bootp_request(secs, None, True, Options.discover(ip))

    def request(self, secs: int, ip: Any, broadcast: bool) -> tuple[Packet, int]:
        """Build a DHCPREQUEST for ``ip``; return it with its transaction id."""
        return self.bootp_request(secs, None, broadcast, Options.request(ip))

    def release(self, secs: int, ip: Any) -> Packet:
        """Build a DHCPRELEASE of ``ip``."""
        return self.bootp_request(secs, ip, False, Options.release())[0]

    def decline(self, secs: int, ip: Any) -> Packet:
        """Build a DHCPDECLINE of ``ip``."""
        return self.bootp_request(secs, ip, False, Options.decline())[0]

    def is_offer(self, reply: Packet, xid: int) -> bool:
        """Whether ``reply`` is a DHCPOFFER answering transaction ``xid``."""
        return self.is_bootp_reply_for_us(reply, xid, [MessageType.OFFER])

    def is_ack(self, reply: Packet, xid: int) -> bool:
        """Whether ``reply`` is a DHCPACK answering transaction ``xid``."""
        return self.is_bootp_reply_for_us(reply, xid, [MessageType.ACK])

    def is_nak(self, reply: Packet, xid: int) -> bool:
        """Whether ``reply`` is a DHCPNAK answering transaction ``xid``."""
        return self.is_bootp_reply_for_us(reply, xid, [MessageType.NAK])

    def bootp_request(
        self,
        secs: int,
        ip: Optional[Any],
        broadcast: bool,
        options: Options,
    ) -> tuple[Packet, int]:
        """Build a request with a fresh transaction id; return it with that id."""
        xid = self.rng.getrandbits(32)
        return Packet.new_request(self.mac, xid, secs, ip, broadcast, options), xid

    def is_bootp_reply_for_us(
        self,
        reply: Packet,
        xid: int,
        expected_message_types: Optional[Iterable[MessageType]] = None,
    ) -> bool:
        """Whether ``reply`` answers ``xid`` from us, with one of the expected types if given."""
        if not (reply.reply and reply.is_for_us(self.mac, xid)):
            return False
        if expected_message_types is None:
            return True
        message_type = reply.options.message_type()
        return any(message_type == expected for expected in expected_message_types)