"""Flag cell, provenance, and introspection records.

Purpose
-------
Model the configurable unit the registry stores and the read-only snapshot it
exposes to callers. Kept in the domain layer so adapters and the application
layer share one vocabulary.

Contents
--------
* :class:`Source` – provenance labels (``cli``, ``env``, ``secret``, ``config``,
  ``default``).
* :class:`Flag` – declared flag with its value cell and display metadata.
* :class:`FlagMeta` – immutable introspection record.
* Module constants :data:`MASK`, :data:`CONFIG_FLAG_NAME`,
  :data:`SECRET_DIR_FLAG_NAME`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Final

from .values import Value

MASK: Final[str] = "******"
"""Replacement text for sensitive values in usage, errors and introspection."""

CONFIG_FLAG_NAME: Final[str] = "config"
SECRET_DIR_FLAG_NAME: Final[str] = "secret-dir"
HELP_NAMES: Final[frozenset[str]] = frozenset({"help", "h"})
"""Undeclared names that request usage instead of failing as unknown."""


class Source(str, Enum):
    """Where a flag's value came from, ordered by precedence."""

    CLI = "cli"
    ENV = "env"
    SECRET = "secret"
    CONFIG = "config"
    DEFAULT = "default"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class Flag:
    """State of one declared flag.

    ``default`` is the formatted value at declaration time and never changes;
    ``value`` is the live cell the source passes write into.
    """

    name: str
    usage: str
    value: Value
    default: str
    sensitive: bool = False
    deprecated: str = ""

    @property
    def is_bool(self) -> bool:
        return bool(getattr(self.value, "is_bool_flag", False))

    def display_value(self) -> str:
        return MASK if self.sensitive else str(self.value)

    def display_default(self) -> str:
        return MASK if self.sensitive else self.default


@dataclass(frozen=True, slots=True)
class FlagMeta:
    """Introspection snapshot of a flag.

    Examples
    --------
    >>> meta = FlagMeta("port", "9000", "8080", True, Source.ENV, False, "listen port", "")
    >>> meta.as_dict()["source"]
    'env'
    """

    name: str
    value: str
    default: str
    set: bool
    source: Source
    sensitive: bool
    usage: str
    deprecated: str

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly mapping of the snapshot."""

        payload = asdict(self)
        payload["source"] = self.source.value
        return payload
