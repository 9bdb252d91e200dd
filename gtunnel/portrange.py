"""Inclusive TCP port ranges parsed from strings such as ``22-80``."""

from __future__ import annotations

import re
from dataclasses import dataclass

_DIGITS = re.compile(r"[0-9]+")
_MAX_PORT = 65535


@dataclass(frozen=True)
class PortRange:
    """An inclusive range of TCP ports."""

    minimum: int
    maximum: int

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.minimum <= port <= self.maximum

    def __str__(self) -> str:
        return f"{{Min: {self.minimum}, Max: {self.maximum}}}"


def _parse_port(text: str) -> int:
    if not _DIGITS.fullmatch(text):
        raise ValueError(f"invalid port number: {text!r}")
    port = int(text)
    if port > _MAX_PORT:
        raise ValueError(f"port number out of range: {text!r}")
    return port


def port_range(minimum: int, maximum: int) -> PortRange:
    """Build a range; a minimum of 0 becomes 1."""
    for value in (minimum, maximum):
        if not 0 <= value <= _MAX_PORT:
            raise ValueError(f"port number out of range: {value}")
    if minimum == 0:
        minimum = 1
    if minimum > maximum:
        raise ValueError("the minimum value is greater than the maximum value")
    return PortRange(minimum, maximum)


def parse_port_range(text: str) -> PortRange:
    """Parse ``a-b``, a single port ``a``, or ``0`` meaning every port."""
    low, dash, high = text.partition("-")
    if not dash:
        port = _parse_port(text)
        if port == 0:
            return port_range(1, _MAX_PORT)
        return port_range(port, port)
    return port_range(_parse_port(low), _parse_port(high))