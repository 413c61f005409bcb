"""Shared fixtures for the flag resolution test-suite.

Every registry built here writes usage and errors into an in-memory buffer and
reads an explicit environment mapping, so tests never depend on the host's
``os.environ`` or pollute the terminal.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Callable, Iterator, Mapping

import pytest

from lib_layered_flags import core
from lib_layered_flags.application.registry import ErrorHandling, FlagSet
from lib_layered_flags.observability import bind_trace_id


@pytest.fixture()
def output() -> io.StringIO:
    """Return the buffer registries created by :func:`make_flagset` write into."""

    return io.StringIO()


@pytest.fixture()
def make_flagset(output: io.StringIO) -> Callable[..., FlagSet]:
    """Build registries that report into the shared ``output`` buffer."""

    def _make(name: str = "test", error_handling: ErrorHandling = ErrorHandling.CONTINUE, **options) -> FlagSet:
        return FlagSet(name, error_handling, output=output, **options)

    return _make


@pytest.fixture()
def write_secrets(tmp_path: Path) -> Callable[[Mapping[str, str]], Path]:
    """Materialise a secret directory with one file per mapping entry."""

    def _write(files: Mapping[str, str]) -> Path:
        directory = tmp_path / "secrets"
        directory.mkdir(exist_ok=True)
        for name, content in files.items():
            (directory / name).write_text(content, encoding="utf-8")
        return directory

    return _write


@pytest.fixture()
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a config file from the given lines and return its path."""

    def _write(*lines: str, name: str = "app.conf") -> Path:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def _isolate_global_state() -> Iterator[None]:
    """Give every test a fresh global registry and no bound trace identifier."""

    core.reset_for_testing("test", output=io.StringIO())
    bind_trace_id(None)
    yield
    core.reset_for_testing("test")
    bind_trace_id(None)
