"""Peeking HTTP request headers without consuming the stream."""

from __future__ import annotations

import io
from typing import BinaryIO, Union

MAX_HTTP_HEADER_SIZE = 16 * 1024
_MAX_HEADER_VALUE = 512
_DEFAULT_BUFFER = 4096
_MIN_BUFFER = 16


class InvalidHeaderLength(ValueError):
    """The header value is empty or too long."""

    def __init__(self, message: str = "invalid header length of http protocol") -> None:
        super().__init__(message)


class InvalidHTTPProtocol(ValueError):
    """The data is not a valid HTTP request."""

    def __init__(self, message: str = "invalid http protocol") -> None:
        super().__init__(message)


class InvalidHost(ValueError):
    """The host value has no usable prefix."""

    def __init__(self, message: str = "invalid host value") -> None:
        super().__init__(message)


class PeekReader:
    """A buffered binary reader that can look ahead without consuming."""

    def __init__(self, source: Union[bytes, bytearray, BinaryIO], size: int = _DEFAULT_BUFFER) -> None:
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(bytes(source))
        self._stream = source
        self._read_some = getattr(source, "read1", source.read)
        self._size = max(size, _MIN_BUFFER)
        self._buf = bytearray()
        self._eof = False

    def _fill(self) -> None:
        chunk = self._read_some(self._size - len(self._buf))
        if not chunk:
            self._eof = True
        else:
            self._buf += chunk

    def buffered(self) -> int:
        """Number of bytes that can be peeked without reading."""
        return len(self._buf)

    def peek(self, n: int) -> bytes:
        """Return the next ``n`` bytes without consuming them.

        Raises BufferError if ``n`` exceeds the buffer size and EOFError
        if the stream ends first.
        """
        if n < 0:
            raise ValueError("negative count")
        wanted = min(n, self._size)
        while len(self._buf) < wanted and not self._eof:
            self._fill()
        if n > self._size:
            raise BufferError("buffer full")
        if len(self._buf) < n:
            raise EOFError("stream ended before enough data was available")
        return bytes(self._buf[:n])

    def discard(self, n: int) -> int:
        """Skip ``n`` bytes, raising EOFError if the stream ends first."""
        if n < 0:
            raise ValueError("negative count")
        remaining = n
        while remaining:
            if not self._buf:
                if self._eof:
                    raise EOFError("stream ended while discarding")
                self._fill()
                continue
            step = min(remaining, len(self._buf))
            del self._buf[:step]
            remaining -= step
        return n

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; an empty result means end of stream."""
        if n < 0:
            raise ValueError("negative count")
        if n == 0:
            return b""
        if not self._buf and not self._eof:
            self._fill()
        data = bytes(self._buf[:n])
        del self._buf[: len(data)]
        return data


def peek_header(reader: PeekReader, target: Union[str, bytes]) -> bytes:
    """Return the value of the first header line starting with ``target``.

    Raises EOFError when the headers end without it.
    """
    prefix = target.encode() if isinstance(target, str) else bytes(target)
    while True:
        n = reader.buffered()
        headers = reader.peek(n)
        start = 0
        while (end := headers.find(b"\n", start)) != -1:
            if end - start >= len(prefix) and headers.startswith(prefix, start):
                line = headers[start + len(prefix):end].strip()
                if not 1 <= len(line) <= _MAX_HEADER_VALUE:
                    raise InvalidHeaderLength()
                return line
            if end >= 3 and headers[end - 3:end + 1] == b"\r\n\r\n":
                raise EOFError("end of headers reached")
            start = end + 1
        if n > MAX_HTTP_HEADER_SIZE:
            raise InvalidHTTPProtocol()
        reader.peek(n + 1)


def peek_host(reader: PeekReader) -> bytes:
    """Return the value of the Host header."""
    return peek_header(reader, b"Host: ")


def parse_id_from_host(host: Union[bytes, bytearray]) -> bytes:
    """Return the first label of a host with at least three labels."""
    host = bytes(host)
    dot = host.find(b".")
    if dot < 0 or dot + 1 >= len(host):
        raise InvalidHost()
    if host[dot + 1:].find(b".") <= 0:
        raise InvalidHost()
    return host[:dot]