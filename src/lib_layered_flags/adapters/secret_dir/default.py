"""Secret directory pass.

Each regular file directly inside the directory may supply one flag. The file
name is lower-cased and tried as a flag name, then tried again with ``_``
replaced by ``-``. Files that match no declared flag are ignored, as are
subdirectories. Files are visited in name order.
"""

from __future__ import annotations

from pathlib import Path

from ...application.ports import FlagStore
from ...domain.errors import IndirectionError, InvalidValue, SourceError
from ...domain.flag import MASK, Flag, Source
from ...observability import log_debug, make_event
from ..indirection.default import resolve_value


def secret_candidates(filename: str) -> tuple[str, ...]:
    """Return the flag names a secret file may stand for, in lookup order.

    Examples
    --------
    >>> secret_candidates("DB_Password")
    ('db_password', 'db-password')
    """

    lower = filename.lower()
    return (lower, lower.replace("_", "-"))


def parse_secret_directory(store: FlagStore, directory: str | Path) -> None:
    """Apply the secret files in *directory* to flags not yet set in *store*."""

    root = Path(directory)
    try:
        entries = sorted(root.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        raise SourceError(f"cannot read secret directory {root}: {exc}") from exc

    applied: list[str] = []
    for entry in entries:
        if not entry.is_file():
            continue
        flag = _match(store, entry.name)
        if flag is None:
            log_debug("secret_file_ignored", **make_event(Source.SECRET.value, str(entry)))
            continue
        if store.is_set(flag.name):
            continue
        _apply_file(store, flag, entry)
        applied.append(flag.name)
    log_debug("pass_completed", **make_event(Source.SECRET.value, str(root), {"applied": len(applied), "flags": applied}))


def _match(store: FlagStore, filename: str) -> Flag | None:
    for candidate in secret_candidates(filename):
        flag = store.formal.get(candidate)
        if flag is not None:
            return flag
    return None


def _apply_file(store: FlagStore, flag: Flag, path: Path) -> None:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceError(f"cannot read secret file {path}: {exc}") from exc
    value = content.rstrip("\r\n")

    if flag.is_bool and (value == "" or value.lower() == "true"):
        store.apply(flag, "true", Source.SECRET)
        return
    try:
        store.apply(flag, resolve_value(value), Source.SECRET)
    except (ValueError, IndirectionError) as exc:
        reason = store.redact(str(exc))
        if flag.sensitive and value:
            reason = reason.replace(value, MASK)
        raise InvalidValue(f"secret file {path.name} invalid for -{flag.name}: {reason}", name=flag.name) from exc
