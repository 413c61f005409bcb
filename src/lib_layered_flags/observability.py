"""Logging for flag resolution.

Purpose
-------
Every source pass, the orchestrator, the registry and the change watcher report
what they did through the package logger ``lib_layered_flags``. Records carry
their fields in ``record.context``; that mapping always holds ``trace_id`` so
one program start or one watcher reload can be followed across passes.

Contents
--------
* :data:`TRACE_ID` – trace identifier of the current resolution.
* :func:`get_logger` – the package logger; silent until the host adds handlers.
* :func:`bind_trace_id` – set or clear :data:`TRACE_ID`.
* :func:`log_debug`, :func:`log_info`, :func:`log_warning`, :func:`log_error`.
* :func:`make_event` – ``source``/``path`` fields shared by the pass events.

Event names are short snake_case verbs of what happened (``pass_completed``,
``flag_resolved``, ``watcher_reload`` ...). Values of sensitive flags are never
logged; callers pass flag names and redacted messages only.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Final, Mapping

TRACE_ID: ContextVar[str | None] = ContextVar("lib_layered_flags_trace_id", default=None)
"""Identifier attached to every record; ``None`` when nothing is bound."""

_LOGGER: Final[logging.Logger] = logging.getLogger("lib_layered_flags")
_LOGGER.addHandler(logging.NullHandler())


def get_logger() -> logging.Logger:
    """Return the package logger; attach handlers to it to see flag events."""

    return _LOGGER


def bind_trace_id(trace_id: str | None) -> None:
    """Attach *trace_id* to the records logged from now on (``None`` clears it).

    :func:`lib_layered_flags.core.parse` and the ``resolve`` command call this
    before resolving.

    Examples
    --------
    >>> bind_trace_id("run-7")
    >>> TRACE_ID.get()
    'run-7'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


def log_debug(message: str, **fields: Any) -> None:
    _emit(logging.DEBUG, message, fields)


def log_info(message: str, **fields: Any) -> None:
    _emit(logging.INFO, message, fields)


def log_warning(message: str, **fields: Any) -> None:
    _emit(logging.WARNING, message, fields)


def log_error(message: str, **fields: Any) -> None:
    _emit(logging.ERROR, message, fields)


def make_event(source: str, path: str | None, payload: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Return the fields of a pass event: *source* (``cli``, ``env``, ``secret``,
    ``config``, ``watcher`` ...), the file or directory *path* involved, and
    *payload* merged on top.

    Examples
    --------
    >>> make_event("secret", "/run/secrets", {"applied": 2})
    {'source': 'secret', 'path': '/run/secrets', 'applied': 2}
    >>> make_event("env", None)
    {'source': 'env', 'path': None}
    """

    event: dict[str, Any] = {"source": source, "path": path}
    if payload:
        event.update(payload)
    return event


def _emit(level: int, message: str, fields: Mapping[str, Any]) -> None:
    _LOGGER.log(level, message, extra={"context": {"trace_id": TRACE_ID.get(), **fields}})
