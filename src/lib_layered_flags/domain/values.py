"""Typed flag values.

Purpose
-------
Provide one mutable cell per supported type. Each cell knows how to parse a
string into its Python value, how to format the value back to text, and how to
push every new value into a bound target (a dataclass attribute during struct
registration).

Contents
--------
* :class:`Value` – base class implementing the parse/format/bind contract.
* Scalar cells: :class:`BoolValue`, :class:`IntValue`, :class:`UnsignedValue`,
  :class:`FloatValue`, :class:`StringValue`, :class:`EnumValue`,
  :class:`DurationValue`, :class:`TimeValue`, :class:`DecimalValue`,
  :class:`RationalValue`,
  :class:`IPValue`, :class:`IPNetworkValue`, :class:`URLValue`,
  :class:`UUIDValue`, :class:`ByteSizeValue`, :class:`RegexpValue`,
  :class:`JSONValue`.
* Collection cells: :class:`StringListValue`, :class:`DurationListValue`,
  :class:`TimeListValue`, :class:`StringMapValue`.
* Marker types: :data:`Unsigned`, :class:`RawJSON`.
* :func:`parse_bool` – the canonical truthy/falsy token table.

System Role
-----------
The registry stores these cells inside :class:`lib_layered_flags.domain.flag.Flag`;
source passes only ever call :meth:`Value.set` and ``str(value)``.
"""

from __future__ import annotations

import ipaddress
import json
import re
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Any, Callable, Final, Iterable, NewType
from urllib.parse import SplitResult, urlsplit

from .units import ByteSize, format_byte_size, format_duration, parse_byte_size, parse_duration

Unsigned = NewType("Unsigned", int)
"""Annotation selecting the non-negative integer parser for a dataclass field."""


class RawJSON(str):
    """Raw JSON payload kept as text after a well-formedness check.

    Examples
    --------
    >>> RawJSON('{"a": [1, 2]}').load()
    {'a': [1, 2]}
    """

    def load(self) -> Any:
        return json.loads(self)


_BOOL_TOKENS: Final[dict[str, bool]] = {
    "1": True,
    "t": True,
    "T": True,
    "true": True,
    "TRUE": True,
    "True": True,
    "0": False,
    "f": False,
    "F": False,
    "false": False,
    "FALSE": False,
    "False": False,
}


def parse_bool(text: str) -> bool:
    """Parse the canonical boolean tokens.

    Examples
    --------
    >>> parse_bool("T"), parse_bool("0")
    (True, False)
    >>> parse_bool("yes")
    Traceback (most recent call last):
    ...
    ValueError: invalid boolean 'yes'
    """

    try:
        return _BOOL_TOKENS[text]
    except KeyError:
        raise ValueError(f"invalid boolean {text!r}") from None


class Value:
    """Base class for typed flag cells.

    Subclasses implement :meth:`parse`, :meth:`format` and :meth:`zero`. The
    cell keeps its current value in :attr:`value`; assigning it forwards the new
    value to the bound sink so dataclass attributes stay in sync.
    """

    type_name: str = "value"
    is_bool_flag: bool = False

    def __init__(self, default: Any = None) -> None:
        self._sink: Callable[[Any], None] | None = None
        self._value = self.zero() if default is None else default

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, new: Any) -> None:
        self._value = new
        if self._sink is not None:
            self._sink(new)

    def bind(self, sink: Callable[[Any], None]) -> None:
        """Forward the current and every future value to *sink*."""

        self._sink = sink
        sink(self._value)

    def zero(self) -> Any:
        return None

    def parse(self, text: str) -> Any:
        raise NotImplementedError

    def format(self, value: Any) -> str:
        return "" if value is None else str(value)

    def set(self, text: str) -> None:
        """Parse *text* and store the result; raises :class:`ValueError` on bad input."""

        self.value = self.parse(text)

    def get(self) -> Any:
        return self._value

    def is_zero(self, text: str) -> bool:
        """Return ``True`` when *text* is the formatted zero value."""

        return text == self.format(self.zero())

    def __str__(self) -> str:
        return self.format(self._value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"


class BoolValue(Value):
    """Boolean cell; may be supplied without ``=value``."""

    type_name = ""
    is_bool_flag = True

    def zero(self) -> bool:
        return False

    def parse(self, text: str) -> bool:
        return parse_bool(text)

    def format(self, value: Any) -> str:
        return "true" if value else "false"


class IntValue(Value):
    """Integer cell accepting ``0x``/``0o``/``0b`` prefixes and a sign.

    A leading zero also selects octal, so ``010`` is 8.

    Examples
    --------
    >>> cell = IntValue()
    >>> cell.parse("0x10"), cell.parse("010"), cell.parse("-0_17")
    (16, 8, -15)
    """

    type_name = "int"

    def zero(self) -> int:
        return 0

    def parse(self, text: str) -> int:
        try:
            return int(_octal_prefix(text), 0)
        except ValueError:
            raise ValueError(f"invalid integer {text!r}") from None


def _octal_prefix(text: str) -> str:
    """Spell a leading-zero octal literal with the ``0o`` prefix Python expects."""

    body = text.strip()
    sign = body[:1] if body[:1] in {"+", "-"} else ""
    digits = body[len(sign) :]
    if len(digits) > 1 and digits[0] == "0" and (digits[1].isdigit() or digits[1] == "_"):
        return f"{sign}0o{digits[1:]}"
    return text


class UnsignedValue(IntValue):
    """Non-negative integer cell."""

    type_name = "uint"

    def parse(self, text: str) -> int:
        number = super().parse(text)
        if number < 0:
            raise ValueError(f"invalid unsigned integer {text!r}")
        return number


class FloatValue(Value):
    type_name = "float"

    def zero(self) -> float:
        return 0.0

    def parse(self, text: str) -> float:
        try:
            return float(text)
        except ValueError:
            raise ValueError(f"invalid float {text!r}") from None

    def format(self, value: Any) -> str:
        return repr(float(value)).removesuffix(".0")


class StringValue(Value):
    type_name = "string"

    def zero(self) -> str:
        return ""

    def parse(self, text: str) -> str:
        return text


class EnumValue(StringValue):
    """String cell restricted to an allowed set.

    Examples
    --------
    >>> cell = EnumValue(["fast", "slow"], "fast")
    >>> cell.set("slow"); str(cell)
    'slow'
    >>> cell.set("medium")
    Traceback (most recent call last):
    ...
    ValueError: invalid value 'medium' (allowed: fast,slow)
    """

    def __init__(self, allowed: Iterable[str], default: str | None = None) -> None:
        self.allowed = tuple(item.strip() for item in allowed if item.strip())
        super().__init__(default)

    def parse(self, text: str) -> str:
        if text not in self.allowed:
            raise ValueError(f"invalid value {text!r} (allowed: {','.join(sorted(self.allowed))})")
        return text


class DurationValue(Value):
    type_name = "duration"

    def zero(self) -> timedelta:
        return timedelta(0)

    def parse(self, text: str) -> timedelta:
        return parse_duration(text)

    def format(self, value: Any) -> str:
        return format_duration(value)


def _parse_time(text: str, layout: str | None) -> datetime:
    if layout:
        return datetime.strptime(text, layout)
    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    return datetime.fromisoformat(iso)


def _format_time(value: datetime | None, layout: str | None) -> str:
    if value is None:
        return ""
    return value.strftime(layout) if layout else value.isoformat()


class TimeValue(Value):
    """Timestamp cell; *layout* is a ``strptime`` format, ``None`` means ISO 8601."""

    def __init__(self, default: datetime | None = None, layout: str | None = None) -> None:
        self.layout = layout or None
        super().__init__(default)

    def parse(self, text: str) -> datetime:
        return _parse_time(text, self.layout)

    def format(self, value: Any) -> str:
        return _format_time(value, self.layout)


class DecimalValue(Value):
    def zero(self) -> Decimal:
        return Decimal(0)

    def parse(self, text: str) -> Decimal:
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"invalid decimal {text!r}") from None
        if not number.is_finite():
            raise ValueError(f"invalid decimal {text!r}")
        return number


class RationalValue(Value):
    """Exact rational number cell: ``3/7``, ``0.25``, ``-2`` or ``1e3``.

    Examples
    --------
    >>> cell = RationalValue()
    >>> cell.set("6/14"); str(cell)
    '3/7'
    >>> cell.parse("0.25")
    Fraction(1, 4)
    """

    type_name = "rational"

    def zero(self) -> Fraction:
        return Fraction(0)

    def parse(self, text: str) -> Fraction:
        try:
            return Fraction(text)
        except (ValueError, ZeroDivisionError):
            raise ValueError(f"invalid rational {text!r}") from None

    def format(self, value: Any) -> str:
        number = Fraction(value or 0)
        return f"{number.numerator}/{number.denominator}"


class IPValue(Value):
    """IP address cell, optionally restricted to one address family."""

    def __init__(self, default: Any = None, version: int | None = None) -> None:
        self.version = version
        super().__init__(default)

    def parse(self, text: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        try:
            address = ipaddress.ip_address(text)
        except ValueError:
            raise ValueError(f"invalid IP {text!r}") from None
        if self.version is not None and address.version != self.version:
            raise ValueError(f"invalid IPv{self.version} address {text!r}")
        return address


class IPNetworkValue(Value):
    """CIDR network cell; host bits are masked off like ``net.ParseCIDR``."""

    def __init__(self, default: Any = None, version: int | None = None) -> None:
        self.version = version
        super().__init__(default)

    def parse(self, text: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
        if "/" not in text:
            raise ValueError(f"invalid CIDR address: {text}")
        try:
            network = ipaddress.ip_network(text, strict=False)
        except ValueError as exc:
            raise ValueError(f"invalid CIDR address: {text}: {exc}") from None
        if self.version is not None and network.version != self.version:
            raise ValueError(f"invalid IPv{self.version} network {text!r}")
        return network


class URLValue(Value):
    def parse(self, text: str) -> SplitResult:
        return urlsplit(text)

    def format(self, value: Any) -> str:
        if value is None or not value.netloc:
            return ""
        return value.geturl()


class UUIDValue(Value):
    def zero(self) -> uuid.UUID:
        return uuid.UUID(int=0)

    def parse(self, text: str) -> uuid.UUID:
        return uuid.UUID(text)


class ByteSizeValue(Value):
    def zero(self) -> ByteSize:
        return ByteSize(0)

    def parse(self, text: str) -> ByteSize:
        return parse_byte_size(text)

    def format(self, value: Any) -> str:
        return format_byte_size(value)


class RegexpValue(Value):
    def parse(self, text: str) -> re.Pattern[str]:
        try:
            return re.compile(text)
        except re.error as exc:
            raise ValueError(f"invalid regexp {text!r}: {exc}") from None

    def format(self, value: Any) -> str:
        return "" if value is None else value.pattern


class JSONValue(Value):
    def zero(self) -> RawJSON:
        return RawJSON("")

    def parse(self, text: str) -> RawJSON:
        try:
            json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON: {exc}") from None
        except RecursionError:
            raise ValueError("invalid JSON: nested too deeply") from None
        return RawJSON(text)


class StringListValue(Value):
    """Ordered list of strings split on *sep*."""

    def __init__(self, default: list[str] | None = None, sep: str = ",") -> None:
        self.sep = sep or ","
        super().__init__(default)

    def zero(self) -> list[str]:
        return []

    def parse(self, text: str) -> list[str]:
        return text.split(self.sep)

    def format(self, value: Any) -> str:
        return self.sep.join(value or [])


class DurationListValue(StringListValue):
    def parse(self, text: str) -> list[timedelta]:  # type: ignore[override]
        return [parse_duration(part.strip()) for part in text.split(self.sep)]

    def format(self, value: Any) -> str:
        return self.sep.join(format_duration(item) for item in value or [])


class TimeListValue(StringListValue):
    def __init__(self, default: list[datetime] | None = None, sep: str = ",", layout: str | None = None) -> None:
        self.layout = layout or None
        super().__init__(default, sep)  # type: ignore[arg-type]

    def parse(self, text: str) -> list[datetime]:  # type: ignore[override]
        return [_parse_time(part.strip(), self.layout) for part in text.split(self.sep)]

    def format(self, value: Any) -> str:
        return self.sep.join(_format_time(item, self.layout) for item in value or [])


def parse_string_map(text: str) -> dict[str, str]:
    """Parse comma-separated ``key=value`` pairs, skipping empty entries.

    Examples
    --------
    >>> parse_string_map("a=1, b=2,,")
    {'a': '1', 'b': '2'}
    >>> parse_string_map("a=1,b")
    Traceback (most recent call last):
    ...
    ValueError: invalid map entry 'b'
    """

    result: dict[str, str] = {}
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, value = entry.partition("=")
        if not sep:
            raise ValueError(f"invalid map entry {entry!r}")
        result[key] = value
    return result


class StringMapValue(Value):
    def zero(self) -> dict[str, str]:
        return {}

    def parse(self, text: str) -> dict[str, str]:
        return parse_string_map(text)

    def format(self, value: Any) -> str:
        return ",".join(sorted(f"{key}={item}" for key, item in (value or {}).items()))
