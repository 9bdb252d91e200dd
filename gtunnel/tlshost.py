"""Extracting the Server Name Indication from a buffered TLS Client Hello."""

from __future__ import annotations

from gtunnel.httpheader import PeekReader

_HANDSHAKE = 22
_CLIENT_HELLO = 1
_SERVER_NAME_EXTENSION = 0
_HOST_NAME = 0


class TLSParseError(ValueError):
    """The buffered data is not a Client Hello carrying a host name."""


def _u16(buf: bytes, pos: int) -> int:
    return int.from_bytes(buf[pos:pos + 2], "big")


def peek_tls_host(reader: PeekReader) -> bytes:
    """Return the SNI host name from the Client Hello without consuming it."""
    reader.peek(1)
    buf = reader.peek(reader.buffered())
    size = len(buf)
    pos = 0

    if pos + 1 > size:
        raise TLSParseError("failed to read Record Layer Type")
    if buf[pos] != _HANDSHAKE:
        raise TLSParseError("the Record Layer type is not Handshake")
    pos += 1 + 2 + 2  # type, version, record length

    if pos + 1 > size:
        raise TLSParseError("failed to read Handshake Type")
    if buf[pos] != _CLIENT_HELLO:
        raise TLSParseError("the Handshake Type is not Client Hello")
    pos += 1 + 3 + 2 + 32  # type, length, version, random

    if pos + 1 > size:
        raise TLSParseError("failed to read Session ID Length")
    pos += 1 + buf[pos]

    if pos + 2 > size:
        raise TLSParseError("failed to read Cipher Suites Length")
    pos += 2 + _u16(buf, pos)

    if pos + 1 > size:
        raise TLSParseError("failed to read Compression Methods Length")
    pos += 1 + buf[pos]

    if pos + 2 > size:
        raise TLSParseError("failed to read Extensions Length")
    remaining = _u16(buf, pos)
    pos += 2

    while remaining > 0:
        if pos + 2 > size:
            raise TLSParseError("failed to read Extension Type")
        extension_type = _u16(buf, pos)
        pos += 2
        remaining -= 2
        if pos + 2 > size:
            raise TLSParseError("failed to read Extension Length")
        extension_len = _u16(buf, pos)
        pos += 2
        remaining -= 2
        if extension_type != _SERVER_NAME_EXTENSION:
            pos += extension_len
            remaining -= extension_len
            continue

        pos += 2  # server name list length
        if pos + 1 > size:
            raise TLSParseError("failed to read Server Name Type")
        if buf[pos] != _HOST_NAME:
            raise TLSParseError("the Server Name Type is not host_name")
        pos += 1
        if pos + 2 > size:
            raise TLSParseError("failed to read Server Name Length")
        name_len = _u16(buf, pos)
        pos += 2
        if pos + name_len > size:
            raise TLSParseError("failed to read Server Name")
        return buf[pos:pos + name_len]

    raise TLSParseError("failed to read Server Name Indication")