"""Error taxonomy tests.

Callers catch :class:`FlagError` to handle every library failure, so the
hierarchy and the message formats are part of the public contract.
"""

from __future__ import annotations

import pytest

from lib_layered_flags.domain.errors import (
    FlagError,
    FlagPanic,
    FlagRedefined,
    FlagSyntaxError,
    HelpRequested,
    IndirectionError,
    InvalidDefault,
    InvalidValue,
    MissingRequiredFlags,
    MultiError,
    RegistrationError,
    SourceError,
    UnknownFlag,
    UnsupportedFieldType,
    ValidationError,
)


@pytest.mark.parametrize(
    ("error", "family"),
    [
        (HelpRequested(), FlagError),
        (FlagSyntaxError("bad flag syntax: -="), FlagError),
        (UnknownFlag("flag provided but not defined: -x", name="x"), FlagError),
        (InvalidValue("invalid value", name="port"), FlagError),
        (IndirectionError("invalid @file reference: empty path"), SourceError),
        (FlagRedefined("flag redefined: port", name="port"), RegistrationError),
        (UnsupportedFieldType("unsupported", field="X"), RegistrationError),
        (InvalidDefault("Port", "NaN", "invalid integer 'NaN'"), RegistrationError),
        (MultiError(), ValidationError),
        (MissingRequiredFlags(["a"]), ValidationError),
    ],
)
def test_error_hierarchy(error: Exception, family: type[Exception]) -> None:
    """Every library error belongs to its documented family and to FlagError."""

    assert isinstance(error, family)
    assert isinstance(error, FlagError)


def test_flag_panic_is_outside_the_flag_error_family() -> None:
    """Ordinary ``except FlagError`` handlers must not absorb a panic."""

    assert issubclass(FlagPanic, RuntimeError)
    assert not issubclass(FlagPanic, FlagError)


def test_help_requested_default_message() -> None:
    """The help signal carries a recognisable message."""

    assert str(HelpRequested()) == "flag: help requested"


def test_invalid_default_names_field_and_raw_text() -> None:
    """InvalidDefault exposes the offending field and literal."""

    error = InvalidDefault("Port", "NaN", "invalid integer 'NaN'")
    assert error.field == "Port"
    assert error.raw == "NaN"
    assert str(error) == "field Port: invalid default 'NaN': invalid integer 'NaN'"


def test_multi_error_collects_in_order_and_ignores_none() -> None:
    """MultiError keeps insertion order and exposes each failure."""

    first = ValidationError("port: value 0 < min 1")
    second = ValidationError("name: bad")
    errors = MultiError([first, None])  # type: ignore[list-item]
    errors.append(None)
    errors.append(second)
    assert errors.has_errors()
    assert errors.errors == [first, second]
    assert str(errors) == "port: value 0 < min 1; name: bad"


def test_multi_error_errors_is_a_copy() -> None:
    """Mutating the returned list leaves the collection untouched."""

    errors = MultiError([ValidationError("x")])
    errors.errors.clear()
    assert len(errors.errors) == 1


def test_missing_required_lists_names() -> None:
    """Missing names are kept in declaration order."""

    error = MissingRequiredFlags(["token", "host"])
    assert error.names == ["token", "host"]
    assert str(error) == "missing required flags: token, host"
