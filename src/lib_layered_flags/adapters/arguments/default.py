"""Command-line argument pass.

Grammar: ``-name``, ``--name``, ``-name=value``, ``-name value`` (non-boolean
flags only). ``--`` ends scanning; so do a lone ``-`` and the first token
that is not a flag. Everything after that is returned as positional
arguments.

This pass runs first, so it never consults the already-set ledger; a flag given
twice keeps the last value.
"""

from __future__ import annotations

from typing import Sequence

from ...application.ports import FlagStore
from ...domain.errors import FlagSyntaxError, HelpRequested, UnknownFlag
from ...domain.flag import HELP_NAMES, Source
from ...observability import log_debug, make_event
from ..indirection.default import apply_source_value


def parse_arguments(store: FlagStore, arguments: Sequence[str]) -> list[str]:
    """Apply *arguments* to *store* and return the positional remainder.

    Examples
    --------
    >>> from lib_layered_flags import FlagSet
    >>> flags = FlagSet()
    >>> verbose = flags.boolean("v")
    >>> parse_arguments(flags, ["-v", "build", "-x"])
    ['build', '-x']
    >>> verbose.value
    True
    """

    remaining = list(arguments)
    applied = 0
    while remaining:
        if not _parse_one(store, remaining):
            break
        applied += 1
    log_debug("pass_completed", **make_event(Source.CLI.value, None, {"applied": applied, "positional": len(remaining)}))
    return remaining


def _parse_one(store: FlagStore, remaining: list[str]) -> bool:
    """Consume one flag from the front of *remaining*; ``False`` when scanning ends."""

    token = remaining[0]
    if len(token) < 2 or token[0] != "-":
        return False
    dashes = 1
    if token[1] == "-":
        dashes = 2
        if len(token) == 2:
            del remaining[0]
            return False
    name = token[dashes:]
    if not name or name[0] in "-=":
        raise FlagSyntaxError(f"bad flag syntax: {token}")

    del remaining[0]
    name, separator, value = name.partition("=")
    has_value = bool(separator)

    flag = store.formal.get(name)
    if flag is None:
        if name in HELP_NAMES:
            raise HelpRequested()
        raise UnknownFlag(f"flag provided but not defined: -{name}", name=name)

    if flag.is_bool:
        if not has_value:
            value = "true"
    elif not has_value:
        if not remaining:
            raise FlagSyntaxError(f"flag needs an argument: -{name}")
        value = remaining.pop(0)

    apply_source_value(store, flag, value, Source.CLI, context=f"flag -{name}")
    return True
