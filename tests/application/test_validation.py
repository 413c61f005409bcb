"""Deferred validation tests.

Checks queued from ``min``/``max``/``pattern`` tags and user validators run
after resolution and report every failure in one :class:`MultiError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

import pytest

from lib_layered_flags.application.registry import FlagSet
from lib_layered_flags.application.structs import flag_field
from lib_layered_flags.application.validation import Check, Validator, run_checks
from lib_layered_flags.domain.errors import MultiError, ValidationError


@dataclass
class Service:
    port: int = flag_field("port", default="8080", minimum=1, maximum=20)
    name: str = flag_field("name", default="api", pattern="^[a-z]+$")


def test_range_violation_is_reported_after_resolution(make_flagset: Callable[..., FlagSet]) -> None:
    """A port below its minimum fails with the bound in the message."""

    with pytest.raises(MultiError) as excinfo:
        make_flagset().register_struct(Service(), arguments=["-port", "0"], environ={})
    assert [str(error) for error in excinfo.value.errors] == ["port: value 0 < min 1"]


def test_all_failures_arrive_together(make_flagset: Callable[..., FlagSet]) -> None:
    """Independent violations are aggregated rather than short-circuited."""

    with pytest.raises(MultiError) as excinfo:
        make_flagset().register_struct(Service(), arguments=["-port", "0", "-name", "API"], environ={})
    message = str(excinfo.value)
    assert "port: value 0 < min 1" in message
    assert "name: value 'API' does not match pattern '^[a-z]+$'" in message
    assert len(excinfo.value.errors) == 2


def test_default_outside_bounds_is_caught(make_flagset: Callable[..., FlagSet]) -> None:
    """Checks see the final value even when it is the declared default."""

    with pytest.raises(MultiError, match="port: value 8080 > max 20"):
        make_flagset().register_struct(Service(), arguments=["-name", "ok"], environ={})


def test_validate_passes_when_values_conform(make_flagset: Callable[..., FlagSet]) -> None:
    """No error is raised when every check holds."""

    service = Service()
    flags = make_flagset()
    flags.register_struct(service, arguments=["-port", "10"], environ={})
    flags.validate()
    assert service.port == 10


@pytest.mark.parametrize(
    ("value", "minimum", "maximum", "expected"),
    [
        ("ab", "3", None, ["name: length 2 < min 3"]),
        ("abcdef", None, "4", ["name: length 6 > max 4"]),
        (["a", "b"], "3", None, ["name: length 2 < min 3"]),
        ({"a": "1"}, None, "0", ["name: length 1 > max 0"]),
        (timedelta(seconds=30), "1m", None, ["name: value 30s < min 1m"]),
        (timedelta(minutes=5), None, "90", ["name: value 5m0s > max 90"]),
        (2.5, "3", None, ["name: value 2.5 < min 3"]),
        (5, "1", "10", []),
    ],
)
def test_check_bounds(value: object, minimum: str | None, maximum: str | None, expected: list[str]) -> None:
    """Numbers compare by value; strings and collections by length; durations accept unit text."""

    failures = Check("name", lambda: value, minimum=minimum, maximum=maximum)()
    assert [str(failure) for failure in failures] == expected


def test_check_rejects_unusable_bounds() -> None:
    """Non-numeric, infinite or NaN bounds are reported instead of compared."""

    assert [str(f) for f in Check("n", lambda: 1, minimum="lots")()] == ["n: invalid min bound 'lots'"]
    assert [str(f) for f in Check("n", lambda: 1, maximum="inf")()] == ["n: invalid max bound 'inf'"]
    assert [str(f) for f in Check("n", lambda: 1, minimum="NaN")()] == ["n: invalid min bound 'NaN'"]


def test_nan_value_never_satisfies_a_bound() -> None:
    """A NaN value fails both bounds."""

    failures = Check("ratio", lambda: float("nan"), minimum="0", maximum="1")()
    assert len(failures) == 2


def test_bound_on_unsupported_type() -> None:
    """Bounds on values without an ordering are reported."""

    assert [str(f) for f in Check("flag", lambda: True, minimum="1")()] == []
    assert [str(f) for f in Check("flag", lambda: object(), minimum="1")()] == ["flag: min not supported for object"]


def test_pattern_checks() -> None:
    """Patterns need string values and a valid expression."""

    assert [str(f) for f in Check("n", lambda: 3, pattern="x")()] == ["n: pattern requires a string value"]
    assert str(Check("n", lambda: "x", pattern="(")()[0]).startswith("n: invalid pattern '('")
    assert Check("n", lambda: "abc", pattern="b")() == []


def test_sensitive_values_are_masked() -> None:
    """Failures of sensitive flags never echo the value."""

    failures = Check("token", lambda: "hunter2", pattern="^tok-", sensitive=True)()
    assert [str(f) for f in failures] == ["token: value '******' does not match pattern '^tok-'"]
    failures = Check("pin", lambda: 12, maximum="9", sensitive=True)()
    assert [str(f) for f in failures] == ["pin: value ****** > max 9"]


def test_validator_outcomes() -> None:
    """Validators fail by raising, returning an exception or returning a message."""

    def _raises() -> None:
        raise ValueError("a and b conflict")

    checks = [
        Validator(lambda: None),
        Validator(_raises),
        Validator(lambda: ValidationError("returned error")),
        Validator(lambda: "returned message"),
    ]
    errors = run_checks(checks)
    assert [str(error) for error in errors.errors] == ["a and b conflict", "returned error", "returned message"]
    assert isinstance(errors.errors[2], ValidationError)


def test_validator_sees_resolved_values(make_flagset: Callable[..., FlagSet]) -> None:
    """Cross-field validators run after every source has been applied."""

    flags = make_flagset()
    low = flags.integer("low", 0)
    high = flags.integer("high", 0)
    flags.add_validator(lambda: "low must not exceed high" if low.get() > high.get() else None)
    flags.parse(["-low", "5"], environ={"HIGH": "3"})
    with pytest.raises(MultiError, match="low must not exceed high"):
        flags.validate()
    flags.set("high", "9")
    flags.validate()


def test_unexpected_validator_exception_propagates(make_flagset: Callable[..., FlagSet]) -> None:
    """Programming errors inside a validator are not turned into validation failures."""

    flags = make_flagset()
    flags.add_validator(lambda: 1 / 0)
    with pytest.raises(ZeroDivisionError):
        flags.validate()
