"""
Probe transport.

The engine talks to a Prober: open() once before probing, send_probe()
once per tick, close() at the end. send_probe() returns the round-trip time
in milliseconds or raises ProbeError (ProbeTimeout for a missing reply).

IcmpProber is the default transport. It prefers an unprivileged datagram
ICMP socket (Linux ping_group_range) and falls back to a raw socket.
"""

import asyncio
import random
import socket
import time
from typing import Optional, Protocol

import aiohttp

from .._internal.icmp_formats import build_echo_request, parse_echo_reply
from ..errors import ProbeError, ProbeTimeout, ResolutionError, TransportError, UnsupportedAddressError


class Prober(Protocol):
    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def send_probe(self, address: str, payload_size: int, timeout: float) -> float: ...


async def resolve_target(host: str) -> str:
    """
    Resolve host to an IPv4 address string.

    Raises:
        ResolutionError: If the host does not resolve.
        UnsupportedAddressError: If it resolves to IPv6 addresses only.
    """
    resolver = aiohttp.ThreadedResolver()
    try:
        infos = await resolver.resolve(host, 0, family=socket.AF_UNSPEC)
    except OSError as e:
        raise ResolutionError(f"Could not resolve host {host!r}: {e}") from e
    finally:
        await resolver.close()

    for info in infos:
        if info["family"] == socket.AF_INET:
            return info["host"]
    if infos:
        raise UnsupportedAddressError("IPv6 is not supported yet.")
    raise ResolutionError(f"Could not resolve host {host!r}.")


class IcmpProber:
    """
    ICMP echo prober for IPv4 targets.

    Args:
        identifier: ICMP identifier for raw sockets (random if omitted).
                    Datagram ICMP sockets get theirs from the kernel.
    """

    RECV_SIZE = 65535

    def __init__(self, identifier: Optional[int] = None):
        self.identifier = identifier if identifier is not None else random.getrandbits(16)
        self._sock: Optional[socket.socket] = None
        self._raw = False
        self._seq = 0

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    async def open(self) -> None:
        """Create the ICMP socket. Raises TransportError if neither socket kind is permitted."""
        if self._sock is not None:
            return
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_ICMP)
            self._raw = False
        except OSError:
            try:
                sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
                self._raw = True
            except PermissionError as e:
                raise TransportError(
                    f"Cannot open ICMP socket: {e}. Run as root or allow unprivileged ICMP "
                    "(net.ipv4.ping_group_range)."
                ) from e
            except OSError as e:
                raise TransportError(f"Cannot open ICMP socket: {e}") from e
        sock.setblocking(False)
        self._sock = sock

    async def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    async def __aenter__(self) -> "IcmpProber":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def send_probe(self, address: str, payload_size: int, timeout: float) -> float:
        """Send one echo request and wait for the matching reply. Returns RTT in ms."""
        if self._sock is None:
            raise ProbeError("Prober is not open")

        seq = self._seq
        self._seq = (self._seq + 1) & 0xFFFF
        packet = build_echo_request(self.identifier, seq, payload_size)
        loop = asyncio.get_running_loop()

        start = time.perf_counter()
        try:
            await loop.sock_sendto(self._sock, packet, (address, 0))
            await asyncio.wait_for(self._wait_for_reply(seq), timeout)
        except asyncio.TimeoutError:
            raise ProbeTimeout(f"no reply within {timeout:g}s") from None
        except OSError as e:
            raise ProbeError(str(e)) from e
        return (time.perf_counter() - start) * 1000.0

    async def _wait_for_reply(self, seq: int):
        """Read until the echo reply for seq arrives; other packets are ignored."""
        loop = asyncio.get_running_loop()
        while True:
            data = await loop.sock_recv(self._sock, self.RECV_SIZE)
            reply = parse_echo_reply(data, has_ip_header=self._raw)
            if reply is None or reply.sequence != seq:
                continue
            # Raw sockets see every ICMP packet on the host
            if self._raw and reply.identifier != self.identifier:
                continue
            return reply
