"""Public package surface for ``lib_layered_flags``.

Declare flags once and resolve each of them from the first source that supplies
it: command line, environment, secret directory, config file, then the declared
default. The names exported here are the stable API; everything else is an
implementation detail of the layered architecture described in ``DESIGN.md``.
"""

from __future__ import annotations

from . import core
from .adapters.config_file.default import MAX_LINE_LENGTH
from .adapters.env.default import env_key
from .adapters.indirection.default import expand_at_file
from .adapters.manifest.structured import declare_manifest, load_manifest
from .adapters.watcher.default import ChangeWatcher
from .application.registry import ErrorHandling, FlagSet, unquote_usage
from .application.structs import (
    FieldContext,
    flag_field,
    flag_group,
    register_field_handler,
    register_struct,
    unregister_field_handler,
)
from .application.validation import Check
from .core import (
    add_validator,
    check_required,
    finalize,
    introspect,
    on_change,
    parse,
    parse_struct,
    print_defaults,
    reset_for_testing,
    start_watcher,
    stop_watcher,
    validate,
)
from .domain.errors import (
    FlagError,
    FlagPanic,
    FlagRedefined,
    FlagSyntaxError,
    HelpRequested,
    IndirectionError,
    InvalidDefault,
    InvalidValue,
    MissingRequiredFlags,
    MultiError,
    RegistrationError,
    SourceError,
    UnknownFlag,
    UnsupportedFieldType,
    ValidationError,
)
from .domain.flag import CONFIG_FLAG_NAME, MASK, SECRET_DIR_FLAG_NAME, Flag, FlagMeta, Source
from .domain.units import ByteSize, format_byte_size, format_duration, parse_byte_size, parse_duration
from .domain.values import (
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
    parse_bool,
)
from .observability import bind_trace_id, get_logger

__all__ = [
    "BoolValue",
    "ByteSize",
    "ByteSizeValue",
    "CONFIG_FLAG_NAME",
    "ChangeWatcher",
    "Check",
    "DecimalValue",
    "DurationListValue",
    "DurationValue",
    "EnumValue",
    "ErrorHandling",
    "FieldContext",
    "Flag",
    "FlagError",
    "FlagMeta",
    "FlagPanic",
    "FlagRedefined",
    "FlagSet",
    "FlagSyntaxError",
    "FloatValue",
    "HelpRequested",
    "IPNetworkValue",
    "IPValue",
    "IndirectionError",
    "IntValue",
    "InvalidDefault",
    "InvalidValue",
    "JSONValue",
    "MASK",
    "MAX_LINE_LENGTH",
    "MissingRequiredFlags",
    "MultiError",
    "RationalValue",
    "RawJSON",
    "RegexpValue",
    "RegistrationError",
    "SECRET_DIR_FLAG_NAME",
    "Source",
    "SourceError",
    "StringListValue",
    "StringMapValue",
    "StringValue",
    "TimeListValue",
    "TimeValue",
    "URLValue",
    "UUIDValue",
    "UnknownFlag",
    "Unsigned",
    "UnsignedValue",
    "UnsupportedFieldType",
    "ValidationError",
    "Value",
    "add_validator",
    "bind_trace_id",
    "check_required",
    "core",
    "declare_manifest",
    "env_key",
    "expand_at_file",
    "finalize",
    "flag_field",
    "flag_group",
    "format_byte_size",
    "format_duration",
    "get_logger",
    "introspect",
    "load_manifest",
    "on_change",
    "parse",
    "parse_bool",
    "parse_byte_size",
    "parse_duration",
    "parse_struct",
    "print_defaults",
    "register_field_handler",
    "register_struct",
    "reset_for_testing",
    "start_watcher",
    "stop_watcher",
    "unquote_usage",
    "unregister_field_handler",
    "validate",
]
