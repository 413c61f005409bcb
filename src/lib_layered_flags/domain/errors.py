"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by the source passes, the struct
registration engine, the validation queue, and consuming applications. The
hierarchy lives in the domain layer to respect the Clean Architecture
dependency rule (outer layers may depend on inner layers, not vice versa).

Contents
--------
* :class:`FlagError` – umbrella base class for all flag-related issues.
* :class:`HelpRequested` – ``-help``/``-h`` was supplied but not declared.
* :class:`FlagSyntaxError` / :class:`UnknownFlag` / :class:`InvalidValue` –
  resolution failures raised by the source passes.
* :class:`SourceError` / :class:`IndirectionError` – I/O failures while reading
  config files, secret files, or ``@file`` references.
* :class:`RegistrationError` and its subclasses – declaration-time failures.
* :class:`ValidationError`, :class:`MultiError`, :class:`MissingRequiredFlags` –
  post-resolution checks.
* :class:`FlagPanic` – raised by the ``PANIC`` error-handling policy.

System Role
-----------
Passes raise these exceptions; :class:`lib_layered_flags.application.registry.FlagSet`
decides whether to propagate them, exit, or panic. Callers catch
:class:`FlagError` to handle all library failures uniformly.
"""

from __future__ import annotations

from typing import Iterable, Sequence


class FlagError(Exception):
    """Base type for all exceptions emitted by ``lib_layered_flags``.

    Why
    ----
    Provide a single catch-all type for consumers that do not need fine-grained
    handling.
    """


class HelpRequested(FlagError):
    """Raised when ``help`` or ``h`` is supplied by a source but not declared.

    Why
    ----
    Lets callers print usage and exit cleanly instead of treating the request as
    an unknown flag.
    """

    def __init__(self, message: str = "flag: help requested") -> None:
        super().__init__(message)


class FlagSyntaxError(FlagError):
    """Malformed command-line token or a non-boolean flag missing its value."""


class UnknownFlag(FlagError):
    """A source named a flag that was never declared."""

    def __init__(self, message: str, *, name: str) -> None:
        super().__init__(message)
        self.name = name


class InvalidValue(FlagError):
    """A source supplied text the flag's value type could not parse."""

    def __init__(self, message: str, *, name: str) -> None:
        super().__init__(message)
        self.name = name


class SourceError(FlagError):
    """Reading a source artifact (config file, secret directory) failed."""


class IndirectionError(SourceError):
    """An ``@file`` reference could not be expanded."""


class RegistrationError(FlagError):
    """Declaration-time failure; always fatal and reported immediately."""


class FlagRedefined(RegistrationError):
    """A flag name was declared twice within the same registry."""

    def __init__(self, message: str, *, name: str) -> None:
        super().__init__(message)
        self.name = name


class UnsupportedFieldType(RegistrationError):
    """A tagged dataclass field has a type no handler knows how to bind."""

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class InvalidDefault(RegistrationError):
    """The ``default`` tag of a dataclass field does not parse with its type.

    Examples
    --------
    >>> err = InvalidDefault("Port", "NaN", "invalid literal for int()")
    >>> str(err)
    "field Port: invalid default 'NaN': invalid literal for int()"
    >>> err.field, err.raw
    ('Port', 'NaN')
    """

    def __init__(self, field: str, raw: str, reason: str) -> None:
        super().__init__(f"field {field}: invalid default {raw!r}: {reason}")
        self.field = field
        self.raw = raw


class ValidationError(FlagError):
    """Signifies that resolved values failed semantic checks."""


class MultiError(ValidationError):
    """Ordered collection of independent errors reported as one.

    Why
    ----
    Validation checks are independent of each other; callers should see every
    failure at once while still being able to inspect each individually.

    Examples
    --------
    >>> errors = MultiError()
    >>> errors.has_errors()
    False
    >>> errors.append(ValueError("port: value 0 < min 1"))
    >>> errors.append(None)
    >>> errors.append(ValueError("name: bad"))
    >>> str(errors)
    'port: value 0 < min 1; name: bad'
    >>> len(errors.errors)
    2
    """

    def __init__(self, errors: Iterable[BaseException] = ()) -> None:
        self._errors: list[BaseException] = [error for error in errors if error is not None]
        super().__init__()

    @property
    def errors(self) -> list[BaseException]:
        """Return a copy of the collected errors in insertion order."""

        return list(self._errors)

    def append(self, error: BaseException | None) -> None:
        """Record *error* unless it is ``None``."""

        if error is not None:
            self._errors.append(error)

    def has_errors(self) -> bool:
        return bool(self._errors)

    def __str__(self) -> str:
        return "; ".join(str(error) for error in self._errors)


class MissingRequiredFlags(ValidationError):
    """Required flags that no source supplied, in declaration order.

    Examples
    --------
    >>> str(MissingRequiredFlags(["a", "c"]))
    'missing required flags: a, c'
    """

    def __init__(self, names: Sequence[str]) -> None:
        self.names = list(names)
        super().__init__(f"missing required flags: {', '.join(self.names)}")


class FlagPanic(RuntimeError):
    """Unrecoverable fault raised by registries using the ``PANIC`` policy.

    Deliberately outside the :class:`FlagError` family so ordinary
    ``except FlagError`` handlers do not absorb it.
    """
