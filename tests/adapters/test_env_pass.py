"""Environment pass tests clarifying variable naming and precedence."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_layered_flags.adapters.env.default import env_key, parse_environment
from lib_layered_flags.application.registry import FlagSet
from lib_layered_flags.domain.errors import InvalidValue
from lib_layered_flags.domain.flag import Source


@pytest.mark.parametrize(
    ("name", "prefix", "expected"),
    [
        ("port", "", "PORT"),
        ("db-password", "", "DB_PASSWORD"),
        ("db.port", "app", "APP_DB_PORT"),
        ("log-level", "My_App", "MY_APP_LOG_LEVEL"),
    ],
)
def test_env_key(name: str, prefix: str, expected: str) -> None:
    """Names are upper-cased, prefixed and stripped of ``-`` and ``.``."""

    assert env_key(name, prefix) == expected


@given(st.from_regex(r"[a-z][a-z0-9.-]{0,12}", fullmatch=True))
def test_env_key_is_shell_safe(name: str) -> None:
    """Generated variable names only contain shell-safe characters."""

    key = env_key(name, "demo")
    assert key.startswith("DEMO_")
    assert all(char.isupper() or char.isdigit() or char == "_" for char in key)


def test_applies_matching_variables(make_flagset: Callable[..., FlagSet]) -> None:
    """Declared flags pick up their variables and record env provenance."""

    flags = make_flagset(env_prefix="APP")
    port = flags.integer("port", 8080)
    name = flags.string("name", "x")
    parse_environment(flags, {"APP_PORT": "9000", "PORT": "1", "OTHER": "ignored"})
    assert port.get() == 9000
    assert name.get() == "x"
    assert flags.source_of("port") is Source.ENV
    assert not flags.is_set("name")


def test_skips_flags_already_set(make_flagset: Callable[..., FlagSet]) -> None:
    """A value supplied on the command line is not overridden."""

    flags = make_flagset()
    port = flags.integer("port", 8080)
    flags.set("port", "9100")
    parse_environment(flags, {"PORT": "9000"})
    assert port.get() == 9100
    assert flags.source_of("port") is Source.CLI


def test_empty_value_enables_boolean(make_flagset: Callable[..., FlagSet]) -> None:
    """An empty variable turns a boolean flag on."""

    flags = make_flagset()
    debug = flags.boolean("debug")
    parse_environment(flags, {"DEBUG": ""})
    assert debug.get() is True


def test_empty_value_for_string_is_applied(make_flagset: Callable[..., FlagSet]) -> None:
    """An empty variable still counts as supplied for non-boolean flags."""

    flags = make_flagset()
    name = flags.string("name", "default")
    parse_environment(flags, {"NAME": ""})
    assert name.get() == ""
    assert flags.is_set("name")


def test_invalid_value_names_the_variable(make_flagset: Callable[..., FlagSet]) -> None:
    """Parse failures report the environment variable consulted."""

    flags = make_flagset(env_prefix="APP")
    flags.integer("port", 8080)
    with pytest.raises(InvalidValue, match="for environment variable APP_PORT"):
        parse_environment(flags, {"APP_PORT": "eighty"})


def test_at_file_expansion(make_flagset: Callable[..., FlagSet], tmp_path: Path) -> None:
    """Environment values may point at a file."""

    (tmp_path / "pw").write_text("s3cr3t\n", encoding="utf-8")
    flags = make_flagset()
    password = flags.string("db-password", "", sensitive=True)
    parse_environment(flags, {"DB_PASSWORD": f"@{tmp_path / 'pw'}"})
    assert password.get() == "s3cr3t"


def test_defaults_to_process_environment(make_flagset: Callable[..., FlagSet], monkeypatch: pytest.MonkeyPatch) -> None:
    """Without an explicit mapping the process environment is read."""

    monkeypatch.setenv("ENVTEST_LEVEL", "7")
    flags = make_flagset(env_prefix="envtest")
    level = flags.integer("level")
    parse_environment(flags)
    assert level.get() == 7
