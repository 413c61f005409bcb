"""Config file pass.

Format: UTF-8 text, one directive per line. ``key value`` and ``key=value``
split at the first space or ``=``; a bare ``key`` sets a boolean flag to
``true``. Blank lines and lines starting with ``#`` are ignored. Keys already
supplied by a higher-precedence source are skipped before the unknown-name
check.
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

from ...application.ports import FlagStore
from ...domain.errors import HelpRequested, SourceError, UnknownFlag
from ...domain.flag import HELP_NAMES, Source
from ...observability import log_debug, make_event
from ..indirection.default import apply_source_value

MAX_LINE_LENGTH: Final[int] = 64 * 1024


def split_directive(line: str) -> tuple[str, str, bool]:
    """Split *line* into ``(name, value, has_value)``.

    Examples
    --------
    >>> split_directive("port 9000")
    ('port', '9000', True)
    >>> split_directive("url=http://x/?a=b")
    ('url', 'http://x/?a=b', True)
    >>> split_directive("debug")
    ('debug', '', False)
    """

    for index, char in enumerate(line):
        if char in "= ":
            return line[:index], line[index + 1 :], True
    return line, "", False


def parse_config_file(store: FlagStore, path: str | Path) -> None:
    """Apply the directives in the file at *path* to flags not yet set in *store*."""

    location = Path(path)
    try:
        handle = location.open(encoding="utf-8")
    except OSError as exc:
        raise SourceError(f"cannot open config file {location}: {exc}") from exc

    applied: list[str] = []
    with handle:
        try:
            for number, line in enumerate(handle, start=1):
                name = _apply_line(store, location, number, line.rstrip("\r\n"))
                if name:
                    applied.append(name)
        except UnicodeDecodeError as exc:
            raise SourceError(f"{location}: not valid UTF-8: {exc}") from exc
    log_debug("pass_completed", **make_event(Source.CONFIG.value, str(location), {"applied": len(applied), "flags": applied}))


def _apply_line(store: FlagStore, location: Path, number: int, line: str) -> str | None:
    if len(line) > MAX_LINE_LENGTH:
        raise SourceError(f"{location}: line {number} too long")
    if not line.strip() or line.startswith("#"):
        return None

    name, value, has_value = split_directive(line)
    if store.is_set(name):
        return None
    flag = store.formal.get(name)
    if flag is None:
        if name in HELP_NAMES:
            raise HelpRequested()
        raise UnknownFlag(f"configuration variable provided but not defined: {name}", name=name)

    if flag.is_bool and not has_value:
        value = "true"
    apply_source_value(store, flag, value, Source.CONFIG, context=f"configuration variable {name}")
    return name
