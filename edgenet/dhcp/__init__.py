"""DHCP options and packets, a client and a server, and their asyncio UDP drivers."""