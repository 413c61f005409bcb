"""Composition root for ``lib_layered_flags``.

Purpose
-------
Own the process-wide registry :data:`COMMAND_LINE` and expose module-level
functions that forward to it, so small programs can declare and resolve flags
without building a :class:`FlagSet` of their own.

Contents
--------
* :data:`COMMAND_LINE` – the global registry (``ErrorHandling.EXIT``), named
  after the running program.
* Declaration helpers (:func:`boolean`, :func:`integer`, :func:`string`, ...)
  and :func:`parse_struct`.
* Resolution and validation helpers (:func:`parse`, :func:`validate`,
  :func:`check_required`, :func:`finalize`).
* Inspection helpers (:func:`introspect`, :func:`lookup`, :func:`visit`, ...).
* :func:`reset_for_testing` – replace the global registry with a fresh one.

System Role
-----------
Every helper reads :data:`COMMAND_LINE` at call time, so
:func:`reset_for_testing` takes effect for all of them. Library code that
needs isolation should construct its own :class:`FlagSet`.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from .adapters.watcher.default import ChangeWatcher
from .application.registry import ErrorHandling, FlagSet
from .domain.flag import Flag, FlagMeta, Source
from .observability import bind_trace_id, log_debug

COMMAND_LINE: FlagSet = FlagSet(Path(sys.argv[0]).name if sys.argv and sys.argv[0] else "", ErrorHandling.EXIT)
"""The process-wide registry used by the module-level helpers."""


def reset_for_testing(name: str | None = None, **options: Any) -> FlagSet:
    """Replace :data:`COMMAND_LINE` with an empty ``EXIT`` registry and return it.

    The previous registry's watcher is stopped. *name* defaults to the previous
    registry's name; *options* are passed to :class:`FlagSet`.
    """

    global COMMAND_LINE
    COMMAND_LINE.stop_watcher()
    COMMAND_LINE = FlagSet(COMMAND_LINE.name if name is None else name, ErrorHandling.EXIT, **options)
    log_debug("registry_reset", name=COMMAND_LINE.name)
    return COMMAND_LINE


# --------------------------------------------------------------- declaration


def var(value: Any, name: str, usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.var(value, name, usage, **options)


def boolean(name: str, default: bool = False, usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.boolean(name, default, usage, **options)


def integer(name: str, default: int = 0, usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.integer(name, default, usage, **options)


def unsigned(name: str, default: int = 0, usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.unsigned(name, default, usage, **options)


def floating(name: str, default: float = 0.0, usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.floating(name, default, usage, **options)


def string(name: str, default: str = "", usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.string(name, default, usage, **options)


def duration(name: str, default: Any = None, usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.duration(name, default, usage, **options)


def string_list(name: str, default: Sequence[str] | None = None, usage: str = "", **options: Any) -> Any:
    return COMMAND_LINE.string_list(name, default, usage, **options)


def parse_struct(obj: Any, **options: Any) -> None:
    """Register dataclass *obj* on :data:`COMMAND_LINE` and, by default, resolve it.

    Keyword options are those of
    :func:`lib_layered_flags.application.structs.register_struct`.
    """

    COMMAND_LINE.register_struct(obj, **options)


# ------------------------------------------------------ resolution/validation


def parse(
    arguments: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    trace_id: str | None = None,
) -> None:
    """Resolve :data:`COMMAND_LINE` from ``sys.argv[1:]`` (or *arguments*).

    Why
    ----
    Most programs resolve their flags once at start-up; binding a trace
    identifier here correlates every pass's log events with that run.

    What
    ----
    Binds *trace_id* (clearing any previous one when ``None``) and runs
    :meth:`FlagSet.parse`. Under the default ``EXIT`` policy a failure prints
    the message and usage and raises :class:`SystemExit`.
    """

    bind_trace_id(trace_id)
    COMMAND_LINE.parse(arguments, environ=environ)


def parsed() -> bool:
    return COMMAND_LINE.parsed


def set(name: str, value: str, source: Source = Source.CLI) -> None:  # noqa: A001
    COMMAND_LINE.set(name, value, source)


def validate() -> None:
    COMMAND_LINE.validate()


def check_required() -> None:
    COMMAND_LINE.check_required()


def finalize() -> None:
    COMMAND_LINE.finalize()


def add_validator(func: Callable[[], Any]) -> None:
    COMMAND_LINE.add_validator(func)


# ----------------------------------------------------------------- inspection


def introspect() -> list[FlagMeta]:
    return COMMAND_LINE.introspect()


def lookup(name: str) -> Flag | None:
    return COMMAND_LINE.lookup(name)


def visit(fn: Callable[[Flag], Any]) -> None:
    COMMAND_LINE.visit(fn)


def visit_all(fn: Callable[[Flag], Any]) -> None:
    COMMAND_LINE.visit_all(fn)


def args() -> list[str]:
    return COMMAND_LINE.args()


def arg(index: int) -> str:
    return COMMAND_LINE.arg(index)


def narg() -> int:
    return COMMAND_LINE.narg()


def nflag() -> int:
    return COMMAND_LINE.nflag()


def usage() -> None:
    COMMAND_LINE.usage()


def print_defaults() -> None:
    COMMAND_LINE.print_defaults()


# -------------------------------------------------------------------- watcher


def on_change(name: str, callback: Callable[[str], None]) -> None:
    COMMAND_LINE.on_change(name, callback)


def start_watcher(
    secret_dir: str | Path | None = None, config_file: str | Path | None = None, *, interval: float = 1.0
) -> ChangeWatcher:
    return COMMAND_LINE.start_watcher(secret_dir, config_file, interval=interval)


def stop_watcher() -> None:
    COMMAND_LINE.stop_watcher()


__all__ = [
    "COMMAND_LINE",
    "add_validator",
    "arg",
    "args",
    "boolean",
    "check_required",
    "duration",
    "finalize",
    "floating",
    "integer",
    "introspect",
    "lookup",
    "narg",
    "nflag",
    "on_change",
    "parse",
    "parse_struct",
    "parsed",
    "print_defaults",
    "reset_for_testing",
    "set",
    "start_watcher",
    "stop_watcher",
    "string",
    "string_list",
    "unsigned",
    "usage",
    "validate",
    "var",
    "visit",
    "visit_all",
]
