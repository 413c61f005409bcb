"""Structured flag manifest loaders.

Purpose
-------
Declare flags from a TOML, JSON or YAML document instead of Python code. A
manifest holds a ``flags`` table with one entry per flag::

    [flags.port]
    type = "int"
    default = 8080
    help = "listen `port`"
    min = 1

Entry keys are the struct metadata keys (``default``, ``help``, ``required``,
``sensitive``, ``enum``, ``sep``, ``layout``, ``min``, ``max``, ``pattern``,
``deprecated``) plus ``type``, one of
:data:`lib_layered_flags.application.structs.TYPE_NAMES`.

Contents
--------
* :class:`BaseManifestLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLManifestLoader`, :class:`JSONManifestLoader`,
  :class:`YAMLManifestLoader` (only usable when PyYAML is installed).
* :func:`load_manifest` – pick a loader by file suffix.
* :func:`declare_manifest` – declare the manifest's flags on a registry.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[assignment,no-redef]

from ...application.structs import TYPE_NAMES, declare_typed
from ...domain.errors import SourceError
from ...observability import log_debug, log_error, log_info

try:
    import yaml  # type: ignore[import-not-found]
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    yaml = None  # type: ignore[assignment]

if TYPE_CHECKING:
    from ...application.registry import FlagSet


class BaseManifestLoader:
    """Common utilities shared by the manifest loaders."""

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`SourceError` when the file is missing.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile(delete=False)
        >>> _ = tmp.write(b"[flags]")
        >>> tmp.close()
        >>> BaseManifestLoader()._read(tmp.name)[:3]
        b'[fl'
        >>> Path(tmp.name).unlink()
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise SourceError(f"Manifest file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("manifest_read", path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise :class:`SourceError`.

        Examples
        --------
        >>> BaseManifestLoader._ensure_mapping({"flags": {}}, path="demo")
        {'flags': {}}
        >>> BaseManifestLoader._ensure_mapping([1], path="demo")
        Traceback (most recent call last):
        ...
        lib_layered_flags.domain.errors.SourceError: File demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise SourceError(f"File {path} did not produce a mapping")
        return data  # type: ignore[return-value]


class TOMLManifestLoader(BaseManifestLoader):
    """Load TOML manifests."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = tomllib.loads(self._read(path).decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            log_error("manifest_invalid", path=path, format="toml", error=str(exc))
            raise SourceError(f"Invalid TOML in {path}: {exc}") from exc
        return self._ensure_mapping(data, path=path)


class JSONManifestLoader(BaseManifestLoader):
    """Load JSON manifests."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = json.loads(self._read(path))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log_error("manifest_invalid", path=path, format="json", error=str(exc))
            raise SourceError(f"Invalid JSON in {path}: {exc}") from exc
        return self._ensure_mapping(data, path=path)


class YAMLManifestLoader(BaseManifestLoader):
    """Load YAML manifests when PyYAML is available."""

    def load(self, path: str) -> Mapping[str, object]:
        if yaml is None:
            raise SourceError("PyYAML is required for YAML manifest support")
        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            log_error("manifest_invalid", path=path, format="yaml", error=str(exc))
            raise SourceError(f"Invalid YAML in {path}: {exc}") from exc
        if data is None:
            data = {}
        return self._ensure_mapping(data, path=path)


_LOADERS: dict[str, BaseManifestLoader] = {
    ".toml": TOMLManifestLoader(),
    ".json": JSONManifestLoader(),
    ".yaml": YAMLManifestLoader(),
    ".yml": YAMLManifestLoader(),
}


def load_manifest(path: str | Path) -> Mapping[str, object]:
    """Parse the manifest at *path* with the loader matching its suffix."""

    loader = _LOADERS.get(Path(path).suffix.lower())
    if loader is None:
        raise SourceError(f"Unsupported manifest format: {path}")
    data = loader.load(str(path))  # type: ignore[attr-defined]
    log_info("manifest_loaded", path=str(path), flags=len(_flag_table(data, str(path))))
    return data


def declare_manifest(flagset: FlagSet, manifest: Mapping[str, Any], *, origin: str = "manifest") -> list[str]:
    """Declare every flag in *manifest* on *flagset*; returns the names in document order.

    Examples
    --------
    >>> from lib_layered_flags import FlagSet
    >>> flags = FlagSet()
    >>> declare_manifest(flags, {"flags": {"port": {"type": "int", "default": 8080}}})
    ['port']
    >>> flags.lookup("port").default
    '8080'
    """

    declared: list[str] = []
    for name, entry in _flag_table(manifest, origin).items():
        if not isinstance(entry, Mapping):
            raise SourceError(f"{origin}: flag {name} must be a table")
        type_name = str(entry.get("type", "string"))
        field_type = TYPE_NAMES.get(type_name)
        if field_type is None:
            raise SourceError(f"{origin}: flag {name}: unknown type {type_name!r} (known: {', '.join(sorted(TYPE_NAMES))})")
        tags = {key: _as_text(item, str(entry.get("sep") or ",")) for key, item in entry.items() if key != "type"}
        declare_typed(flagset, str(name), field_type, tags, label=f"flags.{name}")
        declared.append(str(name))
    return declared


def _flag_table(manifest: Mapping[str, Any], origin: str) -> Mapping[str, Any]:
    table = manifest.get("flags", {})
    if not isinstance(table, Mapping):
        raise SourceError(f"{origin}: 'flags' must be a table")
    return table


def _as_text(item: Any, sep: str) -> Any:
    """Render document scalars the way a command line would spell them."""

    if isinstance(item, bool):
        return "true" if item else "false"
    if isinstance(item, (int, float)):
        return str(item)
    if isinstance(item, (datetime, date)):
        return item.isoformat()
    if isinstance(item, list):
        return sep.join(str(_as_text(part, sep)) for part in item)
    if isinstance(item, Mapping):
        return ",".join(f"{key}={_as_text(value, sep)}" for key, value in item.items())
    return item
