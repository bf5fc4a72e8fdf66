# edgenet

Small, dependency-free building blocks for the network services a device
needs when it joins or hosts a local network:

- a **DHCP** packet codec (`edgenet.dhcp.options`, `edgenet.dhcp.packet`);
- a DHCP client that builds requests and recognises replies
  (`edgenet.dhcp.client`) and a server that hands out leases from a fixed
  address range (`edgenet.dhcp.server`);
- asyncio drivers that run the DHCP client and server over UDP
  (`edgenet.dhcp.io_client`, `edgenet.dhcp.io_server`);
- a **captive-portal DNS** responder that answers every `A` query with one
  fixed address (`edgenet.captive.dns`, `edgenet.captive.server`);
- `edgenet.udp.UdpSocket`, the asyncio UDP socket the drivers can use.

The protocol logic never touches a socket. It works on packets and bytes, so
it can be driven by any transport and tested without a network. The drivers
accept any object with `await receive()` returning `(data, remote)` and
`await send(remote, data)`.

Install with `pip install .`; the test suite needs the `test` extra
(`pip install .[test]`, then `pytest`).

## DHCP packets and options

`Packet.decode` parses a BOOTP/DHCP datagram and `Packet.encode` produces one,
padded to at least 272 bytes. Options are held in an immutable `Options`
collection of `DhcpOption(code, value)` values, with helpers such as
`Options.find(code)`, `Options.message_type()` and `Options.requested_ip()`.
Malformed input raises `DhcpError`, whose `kind` (an `ErrorKind`) tells what
went wrong.

```python
from edgenet.dhcp.options import MessageType
from edgenet.dhcp.packet import Packet, Settings

packet = Packet.decode(datagram)
if packet.options.message_type() is MessageType.OFFER:
    settings = Settings.from_packet(packet)
    print(settings.ip, settings.server_ip, settings.gateway, settings.dns1)
```

## DHCP client

`Client` creates DISCOVER, REQUEST, RELEASE and DECLINE packets, each with a
fresh transaction id taken from its `rng` (any object with `getrandbits`,
`random.SystemRandom()` by default), and checks whether a reply is an offer,
an ack or a nak meant for it.

```python
from edgenet.dhcp.client import Client

client = Client(mac=bytes.fromhex("020000000001"))
discover, xid = client.discover(secs=0, ip=None)
# ... send discover.encode(), receive and decode a reply ...
if client.is_offer(reply, xid):
    ...
```

To negotiate and keep a lease over UDP, use the asyncio driver. The socket
must be able to send and receive broadcast datagrams:

```python
from edgenet.dhcp.io_client import DEFAULT_CLIENT_PORT, Lease
from edgenet.udp import UdpSocket

async with await UdpSocket.bind(("0.0.0.0", DEFAULT_CLIENT_PORT), broadcast=True) as socket:
    lease, info = await Lease.acquire(client, socket)
    await lease.keep(client, socket)      # renews until a renewal fails
    await lease.release(client, socket)
```

`Lease.acquire` retries discovery until an offer arrives; each request waits
3 seconds for a reply and is tried 3 times. `Lease.keep` renews once a third
of the lease duration has passed, checking every 60 seconds.

## DHCP server

`Server` keeps the lease table; `ServerOptions` describes what is handed out
(gateways, subnet mask, DNS servers, captive-portal URL, lease duration,
7200 seconds by default). `Server.handle_request` returns the reply packet to
send, or `None`. Addresses are offered from `.50` to `.200` of the server's
/24, and at most `capacity` leases (64 by default) are held at once.

```python
from ipaddress import IPv4Address

from edgenet.dhcp.io_server import run
from edgenet.dhcp.server import Server, ServerOptions
from edgenet.udp import UdpSocket

ip = IPv4Address("192.168.71.1")
server = Server(ip)
options = ServerOptions.default_for(ip, include_gateway=True)

async with await UdpSocket.bind(("0.0.0.0", 67), broadcast=True) as socket:
    await run(server, options, socket)
```

`run` skips datagrams that do not decode. Replies go to `255.255.255.255`
when the request set the broadcast flag or came from `0.0.0.0`.

## Captive-portal DNS

`edgenet.captive.dns.reply` turns a DNS query into a response answering every
`A`/`IN` question with the given address; other questions are echoed without
an answer and other opcodes get `NOTIMP`. Invalid queries raise
`InvalidMessageError`, and responses longer than `max_size` (512 by default)
raise `ShortBufferError`; both derive from `DnsError`.

```python
from datetime import timedelta
from ipaddress import IPv4Address

from edgenet.captive.server import serve

await serve(("0.0.0.0", 53), IPv4Address("192.168.71.1"), timedelta(seconds=60))
```

`edgenet.captive.server.run` does the same on a socket you already have.

## What it does not do

- There is no command-line program; the services are started from your own
  asyncio code as shown above.
- The DHCP server keeps its leases in memory only; they are lost when the
  `Server` object goes away.
- Replies are sent through ordinary UDP sockets, so a client that cannot take
  a broadcast reply cannot be answered at the link layer by its MAC address.