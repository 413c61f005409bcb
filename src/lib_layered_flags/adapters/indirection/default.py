"""``@file`` indirection.

Any value a source supplies may start with ``@`` to name a file whose content
becomes the value. ``@@`` escapes a literal leading ``@``. The helpers here are
shared by every source pass so expansion always happens right before the value
is parsed into its flag.
"""

from __future__ import annotations

from pathlib import Path

from ...application.ports import FlagStore
from ...domain.errors import IndirectionError, InvalidValue
from ...domain.flag import MASK, Flag, Source


def expand_at_file(raw: str) -> str | None:
    """Return the expansion of *raw* or ``None`` when it carries no reference.

    Examples
    --------
    >>> expand_at_file("plain") is None
    True
    >>> expand_at_file("@@literal")
    '@literal'
    >>> expand_at_file("@")
    Traceback (most recent call last):
    ...
    lib_layered_flags.domain.errors.IndirectionError: invalid @file reference: empty path
    """

    if not raw.startswith("@"):
        return None
    if raw.startswith("@@"):
        return raw[1:]
    path = raw[1:]
    if not path:
        raise IndirectionError("invalid @file reference: empty path")
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise IndirectionError(f"invalid @file reference {path!r}: {exc}") from exc
    return content.rstrip("\r\n")


def resolve_value(raw: str) -> str:
    """Return *raw* with any ``@file`` reference replaced by the file content."""

    expanded = expand_at_file(raw)
    return raw if expanded is None else expanded


def apply_source_value(store: FlagStore, flag: Flag, raw: str, source: Source, *, context: str) -> None:
    """Expand *raw*, parse it into *flag* and record *source*.

    Parse and expansion failures become :class:`InvalidValue` naming *context*
    (``flag -port``, ``environment variable PORT`` ...). Sensitive text is
    masked in the message.
    """

    try:
        store.apply(flag, resolve_value(raw), source)
    except (ValueError, IndirectionError) as exc:
        kind = "boolean value" if flag.is_bool else "value"
        raise InvalidValue(
            f"invalid {kind} {_shown(flag, raw)!r} for {context}: {_reason(store, flag, raw, exc)}",
            name=flag.name,
        ) from exc


def _shown(flag: Flag, raw: str) -> str:
    return MASK if flag.sensitive else raw


def _reason(store: FlagStore, flag: Flag, raw: str, exc: Exception) -> str:
    reason = store.redact(str(exc))
    if flag.sensitive and raw:
        reason = reason.replace(raw, MASK)
    return reason
