"""ICMP echo request/reply wire format."""

import struct
from dataclasses import dataclass
from typing import Optional

ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8

# type:u8 code:u8 checksum:u16 identifier:u16 sequence:u16 (network order)
_HEADER = struct.Struct("!BBHHH")


@dataclass
class EchoReply:
    icmp_type: int
    code: int
    identifier: int
    sequence: int
    payload_size: int


def checksum(data: bytes) -> int:
    """Internet checksum (RFC 1071) over header + payload."""
    if len(data) % 2:
        data += b"\x00"
    total = 0
    for i in range(0, len(data), 2):
        total += (data[i] << 8) | data[i + 1]
    # Fold carries back into the low 16 bits
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


def build_echo_request(identifier: int, sequence: int, payload_size: int) -> bytes:
    """
    Build an ICMP echo request with a zero-filled payload.

    Identifier and sequence are truncated to 16 bits.
    """
    payload = bytes(max(0, payload_size))
    identifier &= 0xFFFF
    sequence &= 0xFFFF
    header = _HEADER.pack(ICMP_ECHO_REQUEST, 0, 0, identifier, sequence)
    csum = checksum(header + payload)
    header = _HEADER.pack(ICMP_ECHO_REQUEST, 0, csum, identifier, sequence)
    return header + payload


def parse_echo_reply(data: bytes, has_ip_header: bool = False) -> Optional[EchoReply]:
    """
    Parse an ICMP echo reply.

    Raw sockets deliver the IPv4 header in front of the ICMP message;
    datagram ICMP sockets deliver the ICMP message only.

    Returns None for truncated packets and for anything that is not an
    echo reply.
    """
    offset = 0
    if has_ip_header:
        if not data:
            return None
        offset = (data[0] & 0x0F) * 4

    if len(data) < offset + _HEADER.size:
        return None

    icmp_type, code, _, identifier, sequence = _HEADER.unpack_from(data, offset)
    if icmp_type != ICMP_ECHO_REPLY:
        return None

    return EchoReply(
        icmp_type=icmp_type,
        code=code,
        identifier=identifier,
        sequence=sequence,
        payload_size=len(data) - offset - _HEADER.size,
    )
