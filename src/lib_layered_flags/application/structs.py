"""Struct registration engine.

Purpose
-------
Turn a dataclass instance into flags. Each field carrying a ``flag`` entry in
its ``dataclasses.field(metadata=...)`` becomes one flag bound to that
attribute. Untagged dataclass-typed fields are walked recursively, optionally
under a dotted ``prefix``.

Contents
--------
* :func:`flag_field` / :func:`flag_group` – build tagged dataclass fields.
* :class:`FieldContext` – everything known about one field while it is being
  registered; passed to custom handlers.
* :func:`register_field_handler` / :func:`unregister_field_handler` – plug in
  handling for types the engine does not know.
* :func:`register_struct` – the entry point.
* :func:`declare_typed` – declare one flag from a type and a tag mapping,
  shared with the manifest loader.
* :data:`TYPE_NAMES` – manifest type names mapped to field types.

Recognised metadata keys: ``flag``, ``default``, ``help``, ``required``,
``enum``, ``sep``, ``layout``, ``sensitive``, ``deprecated``, ``min``, ``max``,
``pattern`` and ``prefix``.

System Role
-----------
Registration errors (bad target, unsupported type, unparsable default) are
raised at the offending field; nothing after it is registered.
"""

from __future__ import annotations

import dataclasses
import ipaddress
import re
import types
import typing
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from fractions import Fraction
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Final, Iterable, Mapping, Sequence
from urllib.parse import SplitResult

from ..domain.errors import InvalidDefault, RegistrationError, UnsupportedFieldType
from ..domain.flag import MASK
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
    Unsigned,
    UnsignedValue,
    URLValue,
    UUIDValue,
    Value,
)
from ..observability import log_debug
from .validation import Check

if TYPE_CHECKING:
    from .registry import FlagSet


FieldHandler = Callable[["FieldContext"], bool]
"""Custom handler: declare the field's flag and return ``True``, or return ``False`` to fall through."""

_FIELD_HANDLERS: dict[Any, FieldHandler] = {}


def register_field_handler(field_type: Any, handler: FieldHandler) -> None:
    """Consult *handler* before built-in handling for fields of *field_type*.

    The handler receives a :class:`FieldContext`. It typically builds a value
    cell, applies :attr:`FieldContext.default_tag`, and calls
    :meth:`FieldContext.declare`.
    """

    _FIELD_HANDLERS[field_type] = handler


def unregister_field_handler(field_type: Any) -> None:
    _FIELD_HANDLERS.pop(field_type, None)


@dataclass(slots=True)
class FieldContext:
    """Descriptor of one field during registration."""

    flagset: FlagSet
    flag_name: str
    field_type: Any
    label: str
    owner: Any = None
    attribute: str = ""
    help: str = ""
    required: bool = False
    sensitive: bool = False
    deprecated: str = ""
    default_tag: Any = None
    tags: Mapping[str, Any] = field(default_factory=dict)

    @property
    def current(self) -> Any:
        """Return the bound attribute's current value (``None`` without an owner)."""

        if self.owner is None:
            return None
        return getattr(self.owner, self.attribute)

    def tag(self, key: str) -> str | None:
        raw = self.tags.get(key)
        return None if raw is None else str(raw)

    def declare(self, cell: Any) -> Any:
        """Declare *cell* under :attr:`flag_name` and mirror its value into the attribute."""

        self.flagset.var(cell, self.flag_name, self.help, sensitive=self.sensitive, deprecated=self.deprecated)
        if self.owner is not None and hasattr(cell, "bind"):
            cell.bind(partial(setattr, self.owner, self.attribute))
        return cell


def flag_field(
    name: str,
    *,
    default: Any = None,
    help: str = "",
    required: bool = False,
    enum: str | Iterable[str] | None = None,
    sep: str | None = None,
    layout: str | None = None,
    sensitive: bool = False,
    deprecated: str | None = None,
    minimum: Any = None,
    maximum: Any = None,
    pattern: str | None = None,
    value: Any = dataclasses.MISSING,
    factory: Callable[[], Any] | Any = dataclasses.MISSING,
) -> Any:
    """Return a dataclass field tagged as flag *name*.

    *default* is text parsed with the field type's parser when the flag is
    registered; a non-string is used as the typed default directly. *value*
    or *factory* set the dataclass attribute's initial value (``None`` when
    both are omitted). Use *factory* for lists and dicts.

    Examples
    --------
    >>> from dataclasses import fields, dataclass
    >>> @dataclass
    ... class Server:
    ...     port: int = flag_field("port", default="8080", minimum=1, maximum=65535)
    >>> dict(fields(Server)[0].metadata)
    {'flag': 'port', 'default': '8080', 'min': 1, 'max': 65535}
    """

    if enum is not None and not isinstance(enum, str):
        enum = ",".join(enum)
    optional = {
        "default": default,
        "help": help or None,
        "required": required or None,
        "enum": enum,
        "sep": sep,
        "layout": layout,
        "sensitive": sensitive or None,
        "deprecated": deprecated,
        "min": minimum,
        "max": maximum,
        "pattern": pattern,
    }
    metadata: dict[str, Any] = {"flag": name}
    metadata.update({key: item for key, item in optional.items() if item is not None})
    if factory is not dataclasses.MISSING:
        return field(default_factory=factory, metadata=metadata)
    return field(default=None if value is dataclasses.MISSING else value, metadata=metadata)


def flag_group(factory: Callable[[], Any], *, prefix: str | None = None) -> Any:
    """Return a field holding a nested dataclass whose flags get ``prefix.`` prepended."""

    metadata = {} if prefix is None else {"prefix": prefix}
    return field(default_factory=factory, metadata=metadata)


ValueFactory = Callable[[FieldContext], Value]


def _separator(ctx: FieldContext) -> str:
    return ctx.tag("sep") or ","


def _string_cell(ctx: FieldContext) -> Value:
    allowed = ctx.tag("enum")
    if allowed:
        return EnumValue(allowed.split(","))
    return StringValue()


_BUILTIN_FACTORIES: Final[dict[Any, ValueFactory]] = {
    bool: lambda ctx: BoolValue(),
    int: lambda ctx: IntValue(),
    Unsigned: lambda ctx: UnsignedValue(),
    float: lambda ctx: FloatValue(),
    str: _string_cell,
    timedelta: lambda ctx: DurationValue(),
    datetime: lambda ctx: TimeValue(layout=ctx.tag("layout")),
    Decimal: lambda ctx: DecimalValue(),
    Fraction: lambda ctx: RationalValue(),
    ipaddress.IPv4Address: lambda ctx: IPValue(version=4),
    ipaddress.IPv6Address: lambda ctx: IPValue(version=6),
    ipaddress.IPv4Network: lambda ctx: IPNetworkValue(version=4),
    ipaddress.IPv6Network: lambda ctx: IPNetworkValue(version=6),
    SplitResult: lambda ctx: URLValue(),
    uuid.UUID: lambda ctx: UUIDValue(),
    ByteSize: lambda ctx: ByteSizeValue(),
    re.Pattern: lambda ctx: RegexpValue(),
    RawJSON: lambda ctx: JSONValue(),
    (list, str): lambda ctx: StringListValue(sep=_separator(ctx)),
    (list, timedelta): lambda ctx: DurationListValue(sep=_separator(ctx)),
    (list, datetime): lambda ctx: TimeListValue(sep=_separator(ctx), layout=ctx.tag("layout")),
    (dict, str, str): lambda ctx: StringMapValue(),
}

TYPE_NAMES: Final[dict[str, Any]] = {
    "bool": bool,
    "int": int,
    "uint": Unsigned,
    "float": float,
    "string": str,
    "duration": timedelta,
    "time": datetime,
    "decimal": Decimal,
    "rational": Fraction,
    "ipv4": ipaddress.IPv4Address,
    "ipv6": ipaddress.IPv6Address,
    "cidr4": ipaddress.IPv4Network,
    "cidr6": ipaddress.IPv6Network,
    "url": SplitResult,
    "uuid": uuid.UUID,
    "bytesize": ByteSize,
    "regexp": re.Pattern,
    "json": RawJSON,
    "strings": list[str],
    "durations": list[timedelta],
    "times": list[datetime],
    "map": dict[str, str],
}


def unwrap_optional(field_type: Any) -> Any:
    """Return ``X`` for ``Optional[X]`` / ``X | None``; other types unchanged.

    Examples
    --------
    >>> unwrap_optional(typing.Optional[int])
    <class 'int'>
    >>> unwrap_optional(str)
    <class 'str'>
    """

    if typing.get_origin(field_type) in (typing.Union, types.UnionType):
        members = [member for member in typing.get_args(field_type) if member is not type(None)]
        if len(members) == 1:
            return members[0]
    return field_type


def type_key(field_type: Any) -> Any:
    """Normalise *field_type* into a key of the built-in factory table.

    Examples
    --------
    >>> type_key(list[str]), type_key(typing.Dict[str, str])
    ((<class 'list'>, <class 'str'>), (<class 'dict'>, <class 'str'>, <class 'str'>))
    """

    field_type = unwrap_optional(field_type)
    origin = typing.get_origin(field_type)
    if origin is None:
        return field_type
    if origin in (list, dict):
        return (origin, *typing.get_args(field_type))
    if origin is re.Pattern:
        return re.Pattern
    return field_type


def _lookup(table: Mapping[Any, Any], key: Any) -> Any:
    try:
        return table.get(key)
    except TypeError:
        return None


def declare_field(ctx: FieldContext) -> None:
    """Declare the flag described by *ctx* and queue its bookkeeping."""

    field_type = unwrap_optional(ctx.field_type)
    handler = _lookup(_FIELD_HANDLERS, field_type)
    if handler is None or not handler(ctx):
        factory = _lookup(_BUILTIN_FACTORIES, type_key(field_type))
        if factory is None:
            raise UnsupportedFieldType(
                f"field {ctx.label}: unsupported field type {_type_name(field_type)} for flag {ctx.flag_name!r}",
                field=ctx.label,
            )
        cell = factory(ctx)
        _apply_default(ctx, cell)
        ctx.declare(cell)

    flag = ctx.flagset.lookup(ctx.flag_name)
    if flag is None:
        raise RegistrationError(f"field {ctx.label}: handler did not declare flag {ctx.flag_name!r}")
    flag.sensitive = flag.sensitive or ctx.sensitive
    if ctx.deprecated and not flag.deprecated:
        flag.deprecated = ctx.deprecated
    if ctx.required:
        ctx.flagset.required.append(ctx.flag_name)

    bounds = {key: ctx.tag(key) for key in ("min", "max", "pattern")}
    if any(bound is not None for bound in bounds.values()):
        getter = partial(getattr, ctx.owner, ctx.attribute) if ctx.owner is not None else flag.value.get
        ctx.flagset.add_check(
            Check(
                ctx.flag_name,
                getter,
                minimum=bounds["min"],
                maximum=bounds["max"],
                pattern=bounds["pattern"],
                sensitive=flag.sensitive,
            )
        )
    log_debug("flag_declared", flag=ctx.flag_name, field=ctx.label, required=ctx.required)


def _apply_default(ctx: FieldContext, cell: Value) -> None:
    """Seed *cell*: zero if required, else the parsed tag, else the attribute's value."""

    if ctx.required:
        return
    raw = ctx.default_tag
    if isinstance(raw, str):
        if raw:
            try:
                cell.value = cell.parse(raw)
            except ValueError as exc:
                reason = str(exc)
                if ctx.sensitive:
                    raw, reason = MASK, reason.replace(raw, MASK)
                raise InvalidDefault(ctx.label, raw, reason) from exc
            return
    elif raw is not None:
        cell.value = raw
        return
    current = ctx.current
    if current is not None:
        cell.value = current


def declare_typed(
    flagset: FlagSet,
    name: str,
    field_type: Any,
    tags: Mapping[str, Any] | None = None,
    *,
    label: str | None = None,
) -> None:
    """Declare flag *name* of *field_type* configured by *tags* (same keys as field metadata)."""

    tags = dict(tags or {})
    ctx = FieldContext(
        flagset=flagset,
        flag_name=name,
        field_type=field_type,
        label=label or name,
        help=str(tags.get("help") or ""),
        required=_truthy(tags.get("required")),
        sensitive=_truthy(tags.get("sensitive")),
        deprecated=str(tags.get("deprecated") or ""),
        default_tag=tags.get("default"),
        tags=tags,
    )
    declare_field(ctx)


def register_struct(
    flagset: FlagSet,
    obj: Any,
    *,
    auto_resolve: bool = True,
    arguments: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> None:
    """Declare one flag per tagged field of dataclass instance *obj*.

    With *auto_resolve* the registry is parsed (from *arguments*, default
    ``sys.argv[1:]``, and *environ*), then validated and checked for missing
    required flags. Without it the caller runs :meth:`FlagSet.parse` and
    :meth:`FlagSet.finalize` later.

    Examples
    --------
    >>> from dataclasses import dataclass
    >>> from lib_layered_flags import FlagSet
    >>> @dataclass
    ... class Options:
    ...     port: int = flag_field("port", default="8080")
    >>> options = Options()
    >>> register_struct(FlagSet(), options, arguments=["-port", "9000"], environ={})
    >>> options.port
    9000
    """

    _check_target(obj)
    if auto_resolve and flagset.parsed:
        raise RegistrationError("register_struct must register before resolving")
    _register_fields(flagset, obj, prefix="", path="")
    if auto_resolve:
        flagset.parse(arguments, environ=environ)
        flagset.finalize()


def _check_target(obj: Any) -> None:
    if obj is None:
        raise RegistrationError("register_struct expects a dataclass instance, got nil")
    if isinstance(obj, type):
        raise RegistrationError(f"register_struct expects a dataclass instance, got class {obj.__name__} (not an instance)")
    if not dataclasses.is_dataclass(obj):
        raise RegistrationError(f"register_struct expects a dataclass instance, got non-struct {type(obj).__name__}")


def _register_fields(flagset: FlagSet, obj: Any, *, prefix: str, path: str) -> None:
    hints = _type_hints(type(obj))
    for item in dataclasses.fields(obj):
        if item.name.startswith("_"):
            continue
        metadata = item.metadata
        field_type = hints.get(item.name, item.type)
        label = f"{path}{item.name}"
        name = metadata.get("flag")
        if not name:
            nested = unwrap_optional(field_type)
            if isinstance(nested, type) and dataclasses.is_dataclass(nested):
                child = getattr(obj, item.name)
                if child is None:
                    child = nested()
                    setattr(obj, item.name, child)
                _register_fields(flagset, child, prefix=_join(prefix, metadata.get("prefix")), path=f"{label}.")
            continue
        ctx = FieldContext(
            flagset=flagset,
            flag_name=_join(prefix, str(name)),
            field_type=field_type,
            label=label,
            owner=obj,
            attribute=item.name,
            help=str(metadata.get("help") or ""),
            required=_truthy(metadata.get("required")),
            sensitive=_truthy(metadata.get("sensitive")),
            deprecated=str(metadata.get("deprecated") or ""),
            default_tag=metadata.get("default"),
            tags=metadata,
        )
        declare_field(ctx)


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError) as exc:
        raise RegistrationError(f"cannot resolve field types of {cls.__name__}: {exc}") from exc


def _join(prefix: str, name: Any) -> str:
    return ".".join(part for part in (prefix, str(name) if name else "") if part)


def _truthy(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() == "true"
    return bool(raw)


def _type_name(field_type: Any) -> str:
    return getattr(field_type, "__name__", None) or repr(field_type)
