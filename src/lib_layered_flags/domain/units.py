"""Unit grammars shared by the value types.

Purpose
-------
Parse and format the two textual unit systems flags understand: byte counts
with decimal/binary suffixes and Go-style elapsed-time strings (``1h30m``,
``250ms``). Both grammars are pure functions so the domain stays free of I/O.

Contents
--------
* :class:`ByteSize` – ``int`` subclass marking a byte-count field.
* :func:`parse_byte_size` / :func:`format_byte_size`
* :func:`parse_duration` / :func:`format_duration`
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Final


class ByteSize(int):
    """Integer number of bytes; used as a field annotation to select the byte-size parser."""


_SIZE_MULTIPLIERS: Final[dict[str, int]] = {
    "": 1,
    "B": 1,
    "K": 1000,
    "KB": 1000,
    "KI": 1024,
    "KIB": 1024,
    "M": 1000**2,
    "MB": 1000**2,
    "MI": 1024**2,
    "MIB": 1024**2,
    "G": 1000**3,
    "GB": 1000**3,
    "GI": 1024**3,
    "GIB": 1024**3,
    "T": 1000**4,
    "TB": 1000**4,
    "TI": 1024**4,
    "TIB": 1024**4,
}

_NUMERIC_PREFIX = re.compile(r"[0-9.+-]*")
_MIN_SIZE: Final[int] = -(2**63)
_MAX_SIZE: Final[int] = 2**63 - 1


def parse_byte_size(text: str) -> ByteSize:
    """Return the byte count described by *text*.

    Accepts a number followed by an optional unit. Units are case-insensitive:
    ``K``/``KB`` (1000), ``Ki``/``KiB`` (1024) and the same for ``M``, ``G``,
    ``T``. An empty string is zero.

    Examples
    --------
    >>> parse_byte_size("10k"), parse_byte_size("2MiB"), parse_byte_size("1.5Gi")
    (10000, 2097152, 1610612736)
    >>> parse_byte_size("")
    0
    >>> parse_byte_size("1.005K")
    1005
    >>> parse_byte_size("5XB")
    Traceback (most recent call last):
    ...
    ValueError: unknown size unit in '5XB'
    """

    if text == "":
        return ByteSize(0)
    stripped = text.strip()
    number = _NUMERIC_PREFIX.match(stripped).group(0)  # type: ignore[union-attr]
    if not number:
        raise ValueError(f"invalid size: {text}")
    unit = stripped[len(number) :].strip().upper()
    try:
        amount = Decimal(number)
    except InvalidOperation:
        raise ValueError(f"invalid size number {number!r}") from None
    try:
        multiplier = _SIZE_MULTIPLIERS[unit]
    except KeyError:
        raise ValueError(f"unknown size unit in {text!r}") from None
    size = int(amount * multiplier)
    if not _MIN_SIZE <= size <= _MAX_SIZE:
        raise ValueError(f"invalid size {text!r}: out of range")
    return ByteSize(size)


def format_byte_size(value: int) -> str:
    """Render a byte count as its plain decimal integer."""

    return str(int(value))


_DURATION_UNITS: Final[dict[str, int]] = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
"""Nanoseconds per duration unit."""

_DURATION_TERM = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration such as ``"1h2m3.5s"`` or ``"-250ms"``.

    Sub-microsecond precision is truncated because :class:`datetime.timedelta`
    stores microseconds.

    Examples
    --------
    >>> parse_duration("2s")
    datetime.timedelta(seconds=2)
    >>> parse_duration("1h30m")
    datetime.timedelta(seconds=5400)
    >>> parse_duration("-1.5ms")
    datetime.timedelta(days=-1, seconds=86399, microseconds=998500)
    >>> parse_duration("0")
    datetime.timedelta(0)
    >>> parse_duration("10")
    Traceback (most recent call last):
    ...
    ValueError: invalid duration '10'
    """

    body = text
    negative = False
    if body[:1] in {"+", "-"}:
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    nanos = Decimal(0)
    position = 0
    while position < len(body):
        match = _DURATION_TERM.match(body, position)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        nanos += Decimal(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    try:
        total = timedelta(microseconds=int(nanos // 1000))
    except OverflowError:
        raise ValueError(f"invalid duration {text!r}: out of range") from None
    return -total if negative else total


def format_duration(value: timedelta) -> str:
    """Render *value* the way Go's ``time.Duration.String`` does.

    Examples
    --------
    >>> format_duration(timedelta(0))
    '0s'
    >>> format_duration(timedelta(hours=1))
    '1h0m0s'
    >>> format_duration(timedelta(minutes=1, seconds=3.5))
    '1m3.5s'
    >>> format_duration(timedelta(milliseconds=250))
    '250ms'
    >>> format_duration(timedelta(microseconds=1500))
    '1.5ms'
    >>> format_duration(-timedelta(seconds=2))
    '-2s'
    """

    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros < 1000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{_trim(micros, 1000)}ms"
    hours, rest = divmod(micros, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    seconds = _trim(rest, 1_000_000)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def _trim(amount: int, scale: int) -> str:
    """Format ``amount / scale`` without trailing fractional zeros."""

    whole, fraction = divmod(amount, scale)
    if not fraction:
        return str(whole)
    digits = len(str(scale)) - 1
    return f"{whole}.{fraction:0{digits}d}".rstrip("0")
