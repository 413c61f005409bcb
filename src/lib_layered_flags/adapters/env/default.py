"""Environment variable pass.

Purpose
-------
Translate process environment variables into flag values. Each declared flag
not yet supplied by the command line is looked up under its environment name.

Key behaviours
--------------
* Upper-cases the flag name, prepends ``PREFIX_`` when the registry has a
  prefix, and maps ``-`` and ``.`` to ``_`` (nested struct flags are dotted).
* An empty value for a boolean flag means ``true``.
* Values may use ``@file`` indirection.
* Emits structured logging via :mod:`lib_layered_flags.observability` to aid
  troubleshooting.
"""

from __future__ import annotations

import os
from typing import Mapping

from ...application.ports import FlagStore
from ...domain.flag import Source
from ...observability import log_debug, make_event
from ..indirection.default import apply_source_value


def env_key(name: str, prefix: str = "") -> str:
    """Return the environment variable consulted for flag *name*.

    Why
    ----
    Namespacing prevents unrelated environment variables from leaking into the
    registry, and shells do not allow ``-`` or ``.`` in variable names.

    Examples
    --------
    >>> env_key("db-password")
    'DB_PASSWORD'
    >>> env_key("db.port", "app")
    'APP_DB_PORT'
    """

    key = name.upper()
    if prefix:
        key = f"{prefix.upper()}_{key}"
    return key.replace("-", "_").replace(".", "_")


def parse_environment(store: FlagStore, environ: Mapping[str, str] | None = None) -> None:
    """Apply matching variables from *environ* (default :data:`os.environ`) to *store*.

    Flags are visited in name order so the first reported failure is stable.

    Examples
    --------
    >>> from lib_layered_flags import FlagSet
    >>> flags = FlagSet(env_prefix="DEMO")
    >>> port = flags.integer("port", 8080)
    >>> parse_environment(flags, {"DEMO_PORT": "9000"})
    >>> port.value
    9000
    """

    source = os.environ if environ is None else environ
    applied: list[str] = []
    for name in sorted(store.formal):
        if store.is_set(name):
            continue
        flag = store.formal[name]
        key = env_key(name, store.env_prefix)
        value = source.get(key)
        if value is None:
            continue
        if flag.is_bool and value == "":
            value = "true"
        apply_source_value(store, flag, value, Source.ENV, context=f"environment variable {key}")
        applied.append(name)
    log_debug("pass_completed", **make_event(Source.ENV.value, None, {"applied": len(applied), "flags": applied}))
