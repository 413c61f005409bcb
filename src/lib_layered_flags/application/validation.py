"""Deferred validation queue.

Purpose
-------
Hold the range, length and pattern checks declared on dataclass fields and the
cross-field validators callers add, then run them once every source has been
merged.

Contents
--------
* :class:`Check` – descriptor for ``min``/``max``/``pattern`` tags on one flag.
* :class:`Validator` – wrapper adapting a user callable to the queue protocol.
* :func:`run_checks` – evaluate every queued entry into one :class:`MultiError`.

System Role
-----------
:class:`lib_layered_flags.application.registry.FlagSet` owns the queue;
:mod:`lib_layered_flags.application.structs` fills it during registration.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Any, Callable, Iterable, Protocol

from ..domain.errors import FlagError, MultiError, ValidationError
from ..domain.flag import MASK
from ..domain.units import format_duration, parse_duration


class QueuedCheck(Protocol):
    def __call__(self) -> list[BaseException]:
        """Return the failures found; an empty list means success."""


@dataclass(frozen=True, slots=True)
class Check:
    """Bounds and pattern attached to one flag.

    ``getter`` reads the resolved value lazily so the check always sees the
    final state.

    Examples
    --------
    >>> Check("port", lambda: 0, minimum="1")()
    [ValidationError('port: value 0 < min 1')]
    >>> Check("name", lambda: "ab", minimum="3")()
    [ValidationError('name: length 2 < min 3')]
    >>> Check("name", lambda: "abc", minimum="3", pattern="^[a-z]+$")()
    []
    """

    flag: str
    getter: Callable[[], Any]
    minimum: str | None = None
    maximum: str | None = None
    pattern: str | None = None
    sensitive: bool = False

    def __call__(self) -> list[BaseException]:
        value = self.getter()
        failures: list[BaseException] = []
        for raw, bound in ((self.minimum, "min"), (self.maximum, "max")):
            if raw is not None:
                failure = self._compare(value, raw, bound)
                if failure is not None:
                    failures.append(failure)
        if self.pattern is not None:
            failure = self._match(value)
            if failure is not None:
                failures.append(failure)
        return failures

    def _compare(self, value: Any, raw: str, bound: str) -> ValidationError | None:
        try:
            kind, measured = _measure(value)
        except TypeError:
            return ValidationError(f"{self.flag}: {bound} not supported for {type(value).__name__}")
        try:
            limit = _parse_bound(raw, value)
        except (ValueError, InvalidOperation):
            return ValidationError(f"{self.flag}: invalid {bound} bound {raw!r}")
        try:
            below = measured < limit
            above = measured > limit
        except InvalidOperation:
            # NaN never satisfies a bound
            below = above = True
        if bound == "min" and below:
            return ValidationError(f"{self.flag}: {kind} {self._show(kind, value, measured)} < min {raw}")
        if bound == "max" and above:
            return ValidationError(f"{self.flag}: {kind} {self._show(kind, value, measured)} > max {raw}")
        return None

    def _match(self, value: Any) -> ValidationError | None:
        if not isinstance(value, str):
            return ValidationError(f"{self.flag}: pattern requires a string value")
        try:
            compiled = re.compile(self.pattern)  # type: ignore[arg-type]
        except re.error as exc:
            return ValidationError(f"{self.flag}: invalid pattern {self.pattern!r}: {exc}")
        if compiled.search(value) is None:
            shown = MASK if self.sensitive else value
            return ValidationError(f"{self.flag}: value {shown!r} does not match pattern {self.pattern!r}")
        return None

    def _show(self, kind: str, value: Any, measured: Any) -> str:
        if kind == "length":
            return str(measured)
        if self.sensitive:
            return MASK
        if isinstance(value, timedelta):
            return format_duration(value)
        return str(value)


@dataclass(frozen=True, slots=True)
class Validator:
    """User cross-field check.

    The wrapped callable takes no arguments. It signals failure by raising
    :class:`ValueError` or :class:`FlagError`, or by returning an exception or
    a message; ``None`` means success.
    """

    func: Callable[[], Any]

    def __call__(self) -> list[BaseException]:
        try:
            outcome = self.func()
        except (ValueError, FlagError) as exc:
            return [exc]
        if outcome is None:
            return []
        if isinstance(outcome, BaseException):
            return [outcome]
        return [ValidationError(str(outcome))]


def run_checks(checks: Iterable[QueuedCheck]) -> MultiError:
    """Run every entry in order and collect all failures."""

    errors = MultiError()
    for check in checks:
        for failure in check():
            errors.append(failure)
    return errors


def _measure(value: Any) -> tuple[str, Any]:
    """Return ``(kind, comparable)`` for *value*; raises :class:`TypeError` if unsupported."""

    if isinstance(value, timedelta):
        return "value", Decimal(str(value.total_seconds()))
    if isinstance(value, (int, Decimal, Fraction)):
        return "value", value
    if isinstance(value, float):
        return "value", Decimal(repr(value))
    if isinstance(value, (str, list, tuple, dict)):
        return "length", len(value)
    raise TypeError(type(value).__name__)


def _parse_bound(raw: str, value: Any) -> Decimal:
    """Parse a ``min``/``max`` tag; durations accept ``1m30s`` style text too."""

    if isinstance(value, timedelta):
        try:
            return Decimal(str(parse_duration(raw).total_seconds()))
        except ValueError:
            pass
    limit = Decimal(raw.strip())
    if not limit.is_finite():
        raise ValueError(raw)
    return limit
