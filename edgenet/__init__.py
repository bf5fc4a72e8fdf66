"""DHCP packet codec, client and server, a captive-portal DNS responder, and asyncio UDP drivers."""

__version__ = "0.11.0"