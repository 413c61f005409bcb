"""Flag registry.

Purpose
-------
Own every declared flag, the ledger of flags a source has already supplied
(with provenance), the error-handling policy, the positional arguments left
after the command line, the required-flag list, the deferred validation queue
and the change callbacks.

Contents
--------
* :class:`ErrorHandling` – what :meth:`FlagSet.parse` does on failure.
* :class:`FlagSet` – the registry and its declaration, resolution,
  validation, introspection and usage operations.
* :func:`unquote_usage` – argument name and display text for a flag's usage.

System Role
-----------
:class:`FlagSet` implements :class:`lib_layered_flags.application.ports.FlagStore`
so source passes can write into it. The process-wide instance lives in
:mod:`lib_layered_flags.core`.
"""

from __future__ import annotations

import json
import sys
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from fractions import Fraction
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Sequence, TextIO

from ..adapters.watcher.default import ChangeWatcher
from ..domain.errors import (
    FlagError,
    FlagPanic,
    FlagRedefined,
    HelpRequested,
    InvalidValue,
    MissingRequiredFlags,
    MultiError,
    UnknownFlag,
)
from ..domain.flag import CONFIG_FLAG_NAME, MASK, SECRET_DIR_FLAG_NAME, Flag, FlagMeta, Source
from ..domain.units import ByteSize
from ..domain.values import (
    BoolValue,
    ByteSizeValue,
    DecimalValue,
    DurationListValue,
    DurationValue,
    EnumValue,
    FloatValue,
    IntValue,
    IPNetworkValue,
    IPValue,
    JSONValue,
    RationalValue,
    RawJSON,
    RegexpValue,
    StringListValue,
    StringMapValue,
    StringValue,
    TimeListValue,
    TimeValue,
    UnsignedValue,
    URLValue,
    UUIDValue,
)
from ..observability import log_debug, log_error, log_warning, make_event
from . import structs
from .ports import FlagValue
from .resolve import Resolver
from .validation import Check, QueuedCheck, Validator, run_checks


class ErrorHandling(Enum):
    """Policy applied when :meth:`FlagSet.parse` fails."""

    CONTINUE = "continue"
    """Raise the :class:`FlagError` to the caller."""
    EXIT = "exit"
    """Raise :class:`SystemExit` with status 2 (0 for a help request)."""
    PANIC = "panic"
    """Raise :class:`FlagPanic`."""


EXIT_STATUS = 2


class FlagSet:
    """Named set of flags resolved from layered sources.

    Examples
    --------
    >>> import io
    >>> flags = FlagSet("demo", output=io.StringIO())
    >>> port = flags.integer("port", 8080, "listen `port`")
    >>> flags.parse(["-port", "9100"], environ={"PORT": "9000"})
    >>> port.value, flags.source_of("port").value
    (9100, 'cli')
    """

    def __init__(
        self,
        name: str = "",
        error_handling: ErrorHandling = ErrorHandling.CONTINUE,
        *,
        env_prefix: str = "",
        output: TextIO | None = None,
        usage: Callable[[], None] | None = None,
        config_flag: str = CONFIG_FLAG_NAME,
        secret_dir_flag: str = SECRET_DIR_FLAG_NAME,
        resolver: Resolver | None = None,
    ) -> None:
        self.name = name
        self.error_handling = error_handling
        self.env_prefix = env_prefix
        self.usage_func = usage
        self.config_flag = config_flag
        self.secret_dir_flag = secret_dir_flag
        self.resolver = resolver or Resolver()
        self.lock = threading.RLock()
        self.required: list[str] = []
        self._output = output
        self._formal: dict[str, Flag] = {}
        self._actual: dict[str, Flag] = {}
        self._sources: dict[str, Source] = {}
        self._args: list[str] = []
        self._parsed = False
        self._checks: list[QueuedCheck] = []
        self._deprecation_warned: set[str] = set()
        self._callbacks: dict[str, list[Callable[[str], None]]] = {}
        self._watcher: ChangeWatcher | None = None

    # ------------------------------------------------------------------ output

    @property
    def output(self) -> TextIO:
        return sys.stderr if self._output is None else self._output

    def set_output(self, output: TextIO | None) -> None:
        """Redirect usage and error messages; ``None`` restores ``sys.stderr``."""

        self._output = output

    # ------------------------------------------------------------ declaration

    def var(self, value: FlagValue, name: str, usage: str = "", *, sensitive: bool = False, deprecated: str = "") -> Any:
        """Declare flag *name* holding *value* and return *value*.

        The default shown in usage is ``str(value)`` at this moment.
        """

        if name in self._formal:
            prefix = f"{self.name} " if self.name else ""
            raise FlagRedefined(f"{prefix}flag redefined: {name}", name=name)
        self._formal[name] = Flag(name, usage, value, str(value), sensitive=sensitive, deprecated=deprecated)  # type: ignore[arg-type]
        return value

    def boolean(self, name: str, default: bool = False, usage: str = "", **options: Any) -> BoolValue:
        return self.var(BoolValue(default), name, usage, **options)

    def integer(self, name: str, default: int = 0, usage: str = "", **options: Any) -> IntValue:
        return self.var(IntValue(default), name, usage, **options)

    def unsigned(self, name: str, default: int = 0, usage: str = "", **options: Any) -> UnsignedValue:
        if default < 0:
            raise ValueError(f"unsigned flag {name} cannot default to {default}")
        return self.var(UnsignedValue(default), name, usage, **options)

    def floating(self, name: str, default: float = 0.0, usage: str = "", **options: Any) -> FloatValue:
        return self.var(FloatValue(default), name, usage, **options)

    def string(self, name: str, default: str = "", usage: str = "", **options: Any) -> StringValue:
        return self.var(StringValue(default), name, usage, **options)

    def enum(self, name: str, default: str, allowed: Iterable[str], usage: str = "", **options: Any) -> EnumValue:
        return self.var(EnumValue(allowed, default), name, usage, **options)

    def duration(self, name: str, default: timedelta | None = None, usage: str = "", **options: Any) -> DurationValue:
        return self.var(DurationValue(default), name, usage, **options)

    def timestamp(
        self, name: str, default: datetime | None = None, usage: str = "", *, layout: str | None = None, **options: Any
    ) -> TimeValue:
        return self.var(TimeValue(default, layout), name, usage, **options)

    def decimal(self, name: str, default: Decimal | None = None, usage: str = "", **options: Any) -> DecimalValue:
        return self.var(DecimalValue(default), name, usage, **options)

    def rational(self, name: str, default: Fraction | None = None, usage: str = "", **options: Any) -> RationalValue:
        return self.var(RationalValue(default), name, usage, **options)

    def ip(self, name: str, default: Any = None, usage: str = "", *, version: int | None = None, **options: Any) -> IPValue:
        return self.var(IPValue(default, version), name, usage, **options)

    def ip_network(
        self, name: str, default: Any = None, usage: str = "", *, version: int | None = None, **options: Any
    ) -> IPNetworkValue:
        return self.var(IPNetworkValue(default, version), name, usage, **options)

    def url(self, name: str, default: Any = None, usage: str = "", **options: Any) -> URLValue:
        return self.var(URLValue(default), name, usage, **options)

    def uuid(self, name: str, default: Any = None, usage: str = "", **options: Any) -> UUIDValue:
        return self.var(UUIDValue(default), name, usage, **options)

    def byte_size(self, name: str, default: int = 0, usage: str = "", **options: Any) -> ByteSizeValue:
        return self.var(ByteSizeValue(ByteSize(default)), name, usage, **options)

    def regexp(self, name: str, default: Any = None, usage: str = "", **options: Any) -> RegexpValue:
        return self.var(RegexpValue(default), name, usage, **options)

    def json(self, name: str, default: str | None = None, usage: str = "", **options: Any) -> JSONValue:
        return self.var(JSONValue(None if default is None else RawJSON(default)), name, usage, **options)

    def string_list(
        self, name: str, default: Sequence[str] | None = None, usage: str = "", *, sep: str = ",", **options: Any
    ) -> StringListValue:
        initial = None if default is None else list(default)
        return self.var(StringListValue(initial, sep), name, usage, **options)

    def duration_list(
        self, name: str, default: Sequence[timedelta] | None = None, usage: str = "", *, sep: str = ",", **options: Any
    ) -> DurationListValue:
        initial = None if default is None else list(default)
        return self.var(DurationListValue(initial, sep), name, usage, **options)  # type: ignore[arg-type]

    def timestamp_list(
        self,
        name: str,
        default: Sequence[datetime] | None = None,
        usage: str = "",
        *,
        sep: str = ",",
        layout: str | None = None,
        **options: Any,
    ) -> TimeListValue:
        initial = None if default is None else list(default)
        return self.var(TimeListValue(initial, sep, layout), name, usage, **options)

    def string_map(self, name: str, default: Mapping[str, str] | None = None, usage: str = "", **options: Any) -> StringMapValue:
        initial = None if default is None else dict(default)
        return self.var(StringMapValue(initial), name, usage, **options)

    def register_struct(self, obj: Any, **options: Any) -> None:
        """Declare one flag per tagged field of dataclass *obj*; see :func:`structs.register_struct`."""

        structs.register_struct(self, obj, **options)

    # ------------------------------------------------------------- inspection

    @property
    def formal(self) -> Mapping[str, Flag]:
        return MappingProxyType(self._formal)

    @property
    def parsed(self) -> bool:
        return self._parsed

    def lookup(self, name: str) -> Flag | None:
        return self._formal.get(name)

    def is_set(self, name: str) -> bool:
        return name in self._actual

    def source_of(self, name: str) -> Source:
        return self._sources.get(name, Source.DEFAULT)

    def visit(self, fn: Callable[[Flag], Any]) -> None:
        """Call *fn* for every flag a source supplied, in name order."""

        for name in sorted(self._actual):
            fn(self._actual[name])

    def visit_all(self, fn: Callable[[Flag], Any]) -> None:
        """Call *fn* for every declared flag, in name order."""

        for name in sorted(self._formal):
            fn(self._formal[name])

    def nflag(self) -> int:
        return len(self._actual)

    def args(self) -> list[str]:
        return list(self._args)

    def narg(self) -> int:
        return len(self._args)

    def arg(self, index: int) -> str:
        """Return positional argument *index* or ``""`` when out of range."""

        if 0 <= index < len(self._args):
            return self._args[index]
        return ""

    def introspect(self) -> list[FlagMeta]:
        """Snapshot every flag in name order; sensitive values are masked.

        Examples
        --------
        >>> flags = FlagSet()
        >>> _ = flags.string("token", "abc", sensitive=True)
        >>> [(meta.name, meta.value, meta.source.value) for meta in flags.introspect()]
        [('token', '******', 'default')]
        """

        with self.lock:
            return [
                FlagMeta(
                    name=flag.name,
                    value=flag.display_value(),
                    default=flag.display_default(),
                    set=flag.name in self._actual,
                    source=self.source_of(flag.name),
                    sensitive=flag.sensitive,
                    usage=flag.usage,
                    deprecated=flag.deprecated,
                )
                for flag in (self._formal[name] for name in sorted(self._formal))
            ]

    def redact(self, text: str) -> str:
        """Replace the current and default text of sensitive flags with the mask."""

        for flag in self._formal.values():
            if not flag.sensitive or flag.is_bool:
                continue
            for secret in {str(flag.value), flag.default}:
                if secret and secret != MASK and not _is_zero_value(flag, secret):
                    text = text.replace(secret, MASK)
        return text

    # ------------------------------------------------------------- mutation

    def apply(self, flag: Flag, text: str, source: Source) -> None:
        """Parse *text* into *flag* and record *source*; :class:`ValueError` propagates."""

        flag.value.set(text)
        self.mark(flag.name, source)

    def mark(self, name: str, source: Source) -> None:
        """Record that *name* was supplied by *source*."""

        flag = self._formal[name]
        self._actual[name] = flag
        self._sources[name] = source
        if flag.deprecated:
            self._warn_deprecated(flag, source)
        log_debug("flag_resolved", **make_event(source.value, None, {"flag": name}))

    def release(self, name: str) -> None:
        self._actual.pop(name, None)
        self._sources.pop(name, None)

    def set(self, name: str, value: str, source: Source = Source.CLI) -> None:
        """Set flag *name* from *value* and record it as supplied by *source*.

        Examples
        --------
        >>> flags = FlagSet()
        >>> _ = flags.boolean("debug")
        >>> flags.set("debug", "true"); flags.is_set("debug")
        True
        >>> flags.set("nope", "1")
        Traceback (most recent call last):
        ...
        lib_layered_flags.domain.errors.UnknownFlag: no such flag -nope
        """

        with self.lock:
            flag = self._formal.get(name)
            if flag is None:
                raise UnknownFlag(f"no such flag -{name}", name=name)
            try:
                self.apply(flag, value, source)
            except ValueError as exc:
                shown = MASK if flag.sensitive else value
                reason = self.redact(str(exc))
                if flag.sensitive and value:
                    reason = reason.replace(value, MASK)
                raise InvalidValue(f"invalid value {shown!r} for flag -{name}: {reason}", name=name) from exc

    # ------------------------------------------------------------- resolution

    def parse(self, arguments: Sequence[str] | None = None, *, environ: Mapping[str, str] | None = None) -> None:
        """Resolve every flag from the command line, environment, secret directory and config file.

        *arguments* defaults to ``sys.argv[1:]`` and *environ* to
        :data:`os.environ`. Failures go through :attr:`error_handling`.
        """

        with self.lock:
            self._parsed = True
            if arguments is None:
                arguments = sys.argv[1:]
            try:
                self._args = self.resolver.resolve(self, arguments, environ)
            except FlagError as error:
                self._fail(error)

    def parse_args(self, arguments: Sequence[str]) -> list[str]:
        """Run only the command-line pass; returns the positional arguments."""

        with self.lock:
            self._parsed = True
            self._args = self.resolver.arguments(self, arguments)
            return list(self._args)

    def parse_env(self, environ: Mapping[str, str] | None = None) -> None:
        with self.lock:
            self.resolver.environment(self, environ)

    def parse_secret_dir(self, directory: str | Path) -> None:
        with self.lock:
            self.resolver.secret_dir(self, directory)

    def parse_file(self, path: str | Path) -> None:
        with self.lock:
            self.resolver.config_file(self, path)

    def controlling_path(self, name: str) -> str:
        """Return the current text of controlling flag *name* (``""`` if undeclared)."""

        flag = self._formal.get(name)
        return "" if flag is None else str(flag.value)

    def _fail(self, error: FlagError) -> None:
        if isinstance(error, HelpRequested):
            self.usage()
        else:
            message = self.redact(str(error))
            print(message, file=self.output)
            self.usage()
            log_error("flag_failure", flag=getattr(error, "name", None), error=message, error_type=type(error).__name__)
        if self.error_handling is ErrorHandling.CONTINUE:
            raise error
        if self.error_handling is ErrorHandling.EXIT:
            raise SystemExit(0 if isinstance(error, HelpRequested) else EXIT_STATUS) from error
        raise FlagPanic(str(error)) from error

    def _warn_deprecated(self, flag: Flag, source: Source) -> None:
        if flag.name in self._deprecation_warned:
            return
        self._deprecation_warned.add(flag.name)
        print(f"flag -{flag.name} is deprecated: {flag.deprecated}", file=self.output)
        log_warning("flag_deprecated", flag=flag.name, note=flag.deprecated, source=source.value)

    # ------------------------------------------------------------- validation

    def add_check(self, check: Check) -> None:
        self._checks.append(check)

    def add_validator(self, func: Callable[[], Any]) -> None:
        """Queue a zero-argument cross-field check run by :meth:`validate`."""

        self._checks.append(Validator(func))

    def validate(self) -> None:
        """Run the deferred checks; raises :class:`MultiError` with every failure."""

        errors = self._run_checks()
        if errors.has_errors():
            raise errors

    def missing_required(self) -> list[str]:
        return [name for name in self.required if name not in self._actual]

    def check_required(self) -> None:
        missing = self.missing_required()
        if missing:
            raise MissingRequiredFlags(missing)

    def finalize(self) -> None:
        """Run :meth:`validate` and :meth:`check_required`, reporting both together."""

        errors = self._run_checks()
        missing = self.missing_required()
        if missing:
            if not errors.has_errors():
                raise MissingRequiredFlags(missing)
            errors.append(MissingRequiredFlags(missing))
        if errors.has_errors():
            raise errors

    def _run_checks(self) -> MultiError:
        with self.lock:
            return run_checks(self._checks)

    # ---------------------------------------------------------------- watcher

    def on_change(self, name: str, callback: Callable[[str], None]) -> None:
        """Call *callback* with the new text of flag *name* whenever a reload changes it."""

        with self.lock:
            self._callbacks.setdefault(name, []).append(callback)

    def change_callbacks(self, name: str) -> list[Callable[[str], None]]:
        with self.lock:
            return list(self._callbacks.get(name, ()))

    def start_watcher(
        self, secret_dir: str | Path | None = None, config_file: str | Path | None = None, *, interval: float = 1.0
    ) -> ChangeWatcher:
        """Start polling the secret directory and config file for changes.

        Both default to the current values of the controlling flags.
        """

        self.stop_watcher()
        watcher = ChangeWatcher(
            self,
            secret_dir=secret_dir if secret_dir is not None else self.controlling_path(self.secret_dir_flag) or None,
            config_file=config_file if config_file is not None else self.controlling_path(self.config_flag) or None,
            interval=interval,
        )
        watcher.start()
        self._watcher = watcher
        return watcher

    def stop_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    # ------------------------------------------------------------------ usage

    def usage(self) -> None:
        """Print the usage message (custom ``usage`` callable when given)."""

        if self.usage_func is not None:
            self.usage_func()
            return
        header = f"Usage of {self.name}:" if self.name else "Usage:"
        print(header, file=self.output)
        self.print_defaults()

    def print_defaults(self) -> None:
        """Print one entry per declared flag in name order.

        Each entry is ``  -name type`` followed by the usage on an indented
        line. One-letter boolean flags keep the usage on the same line. The
        default is appended unless it is the zero value; string defaults are
        quoted and sensitive defaults masked.
        """

        self.visit_all(lambda flag: print(format_flag_usage(flag), file=self.output))


def unquote_usage(flag: Flag) -> tuple[str, str]:
    """Return ``(argument name, usage text)`` for *flag*.

    A back-quoted word in the usage names the argument and loses its quotes;
    otherwise the value's type name is used (empty for booleans).

    Examples
    --------
    >>> unquote_usage(Flag("dir", "search `directory` for files", StringValue(), ""))
    ('directory', 'search directory for files')
    >>> unquote_usage(Flag("n", "count", IntValue(), "0"))
    ('int', 'count')
    """

    usage = flag.usage
    start = usage.find("`")
    if start != -1:
        end = usage.find("`", start + 1)
        if end != -1:
            name = usage[start + 1 : end]
            return name, usage[:start] + name + usage[end + 1 :]
    if flag.is_bool:
        return "", usage
    return getattr(flag.value, "type_name", "value"), usage


def format_flag_usage(flag: Flag) -> str:
    """Render one ``print_defaults`` entry without the trailing newline."""

    line = f"  -{flag.name}"
    name, usage = unquote_usage(flag)
    if name:
        line += f" {name}"
    line += "\t" if len(line) <= 4 else "\n    \t"
    line += usage
    if not _is_zero_value(flag, flag.default):
        default = flag.display_default()
        if type(flag.value) is StringValue and not flag.sensitive:
            line += f" (default {json.dumps(default, ensure_ascii=False)})"
        else:
            line += f" (default {default})"
    return line


def _is_zero_value(flag: Flag, text: str) -> bool:
    is_zero = getattr(flag.value, "is_zero", None)
    if is_zero is not None and is_zero(text):
        return True
    return text in {"false", "", "0"}

