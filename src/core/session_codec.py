"""Portable session string codec.

Layout before base64: 1 byte dc id, 4 (IPv4) or 16 (IPv6) address bytes,
2 byte big-endian port, 256 byte auth key. The payload is URL-safe base64
encoded and prefixed with the format version character. The result is
byte-compatible with Telethon's StringSession.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
import struct
from typing import Tuple

from core.errors import CodecError
from core.models import SessionData

CURRENT_VERSION = "1"
AUTH_KEY_SIZE = 256
_FIXED_SIZE = 1 + 2 + AUTH_KEY_SIZE
_ADDRESS_SIZES = (4, 16)


def join_host_port(host: str, port: int) -> str:
    """Format a host/port pair, bracketing IPv6 hosts."""

    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def split_host_port(address: str) -> Tuple[str, str]:
    """Split "host:port" or "[v6host]:port"; raise CodecError otherwise."""

    if address.startswith("["):
        end = address.find("]")
        if end < 0 or address[end + 1 : end + 2] != ":":
            raise CodecError(f"invalid address format: {address}")
        return address[1:end], address[end + 2 :]

    host, sep, port = address.rpartition(":")
    if not sep:
        raise CodecError(f"invalid address format: missing port in {address}")
    if ":" in host:
        raise CodecError(f"invalid address format: too many colons in {address}")
    return host, port


def _pack_ip(host: str) -> bytes:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError as exc:
        raise CodecError(f"invalid IP address: {host}") from exc
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.packed


def encode_session(session: SessionData) -> str:
    """Serialize a session into a portable string."""

    if not session.address:
        raise CodecError("session address is empty - session may not be fully initialized yet")

    host, port_text = split_host_port(session.address)
    # int() rejects superscripts and other non-ASCII digits that isdigit() accepts.
    if not (port_text.isascii() and port_text.isdigit()):
        raise CodecError(f"invalid port: {port_text!r}")
    port = int(port_text)
    if port > 0xFFFF:
        raise CodecError(f"port out of range: {port}")

    packed_ip = _pack_ip(host)

    if not 0 <= session.dc_id <= 0xFF:
        raise CodecError(f"dc id out of range: {session.dc_id}")
    if len(session.auth_key) != AUTH_KEY_SIZE:
        raise CodecError(
            f"auth key must be {AUTH_KEY_SIZE} bytes, got {len(session.auth_key)}"
        )

    payload = struct.pack(
        f">B{len(packed_ip)}sH{AUTH_KEY_SIZE}s",
        session.dc_id,
        packed_ip,
        port,
        session.auth_key,
    )
    return CURRENT_VERSION + base64.urlsafe_b64encode(payload).decode("ascii")


def decode_session(value: str) -> SessionData:
    """Parse a portable session string back into SessionData."""

    if not value:
        raise CodecError("session string is empty")
    if value[0] != CURRENT_VERSION:
        raise CodecError(f"unsupported session format version: {value[0]!r}")

    body = value[1:].strip()
    body += "=" * (-len(body) % 4)
    try:
        payload = base64.b64decode(body, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CodecError(f"session string is not valid base64: {exc}") from exc

    # Address width is inferred from the total length, never trusted blindly.
    ip_size = len(payload) - _FIXED_SIZE
    if ip_size not in _ADDRESS_SIZES:
        raise CodecError(f"unexpected session payload length: {len(payload)} bytes")

    dc_id, packed_ip, port, auth_key = struct.unpack(
        f">B{ip_size}sH{AUTH_KEY_SIZE}s", payload
    )
    host = str(ipaddress.ip_address(packed_ip))
    return SessionData(dc_id=dc_id, address=join_host_port(host, port), auth_key=auth_key)
