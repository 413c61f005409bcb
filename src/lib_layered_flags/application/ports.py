"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts source passes and custom value types must
satisfy so the registry and the orchestrator can run them without depending
on concrete implementations.

Contents
--------
* :class:`FlagValue` – what a typed cell must offer to be stored in a registry.
* :class:`FlagStore` – the registry surface a source pass may touch.
* :class:`SourcePass` – callable shape shared by the environment, secret
  directory and config file passes.

System Role
-----------
These protocols enforce Dependency Inversion (DIP). Adapters under
``lib_layered_flags.adapters`` accept a :class:`FlagStore` rather than the
concrete :class:`lib_layered_flags.application.registry.FlagSet`.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from ..domain.flag import Flag, Source


@runtime_checkable
class FlagValue(Protocol):
    """Typed cell contract.

    Why
    ----
    User-defined types plug into the registry through :meth:`FlagSet.var`; they
    only need to parse text, render themselves and expose their content.
    ``set`` raises :class:`ValueError` for unparsable text. Cells that may be
    supplied without a value expose ``is_bool_flag = True``.
    """

    def set(self, text: str) -> None:
        """Parse *text* and store it."""

    def get(self) -> Any:
        """Return the current typed content."""

    def __str__(self) -> str:
        """Render the current content as text."""


@runtime_checkable
class FlagStore(Protocol):
    """Registry operations available to source passes."""

    env_prefix: str

    @property
    def formal(self) -> Mapping[str, Flag]:
        """All declared flags by name."""

    def is_set(self, name: str) -> bool:
        """Return ``True`` when a source already supplied *name*."""

    def apply(self, flag: Flag, text: str, source: Source) -> None:
        """Parse *text* into *flag* and record *source* as its provenance."""

    def release(self, name: str) -> None:
        """Forget that *name* was supplied so a later pass may set it again."""

    def usage(self) -> None:
        """Print the usage message to the registry output."""

    def redact(self, text: str) -> str:
        """Mask sensitive values occurring in *text*."""


class SourcePass(Protocol):
    """Single sweep over a registry for one source of truth."""

    def __call__(self, store: FlagStore, origin: Any, /) -> None:
        """Apply values from *origin* to flags not yet set in *store*."""
