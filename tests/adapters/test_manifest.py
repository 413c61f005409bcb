"""Flag manifest loader tests.

Manifests declare flags from TOML, JSON or YAML documents; the loaders must
report malformed input as :class:`SourceError` and feed the struct engine's
type table.
"""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Callable

import pytest

from lib_layered_flags.adapters.manifest import structured as structured_module
from lib_layered_flags.adapters.manifest.structured import (
    JSONManifestLoader,
    TOMLManifestLoader,
    YAMLManifestLoader,
    declare_manifest,
    load_manifest,
)
from lib_layered_flags.application.registry import FlagSet
from lib_layered_flags.domain.errors import InvalidDefault, MultiError, SourceError
from lib_layered_flags.domain.flag import MASK

TOML_MANIFEST = """
[flags.port]
type = "int"
default = 8080
help = "listen `port`"
min = 1
max = 65535

[flags.mode]
type = "string"
enum = ["fast", "safe"]
default = "safe"

[flags.token]
type = "string"
sensitive = true
required = true

[flags.timeout]
type = "duration"
default = "1m30s"

[flags.hosts]
type = "strings"
sep = ";"
default = ["a", "b"]

[flags.labels]
type = "map"
default = { team = "core" }
"""


def test_toml_manifest_declares_typed_flags(tmp_path: Path, make_flagset: Callable[..., FlagSet]) -> None:
    """Each entry becomes a flag with its parsed default and options."""

    path = tmp_path / "flags.toml"
    path.write_text(TOML_MANIFEST, encoding="utf-8")
    flags = make_flagset()
    names = declare_manifest(flags, load_manifest(path))
    assert names == ["port", "mode", "token", "timeout", "hosts", "labels"]
    assert flags.lookup("port").value.get() == 8080
    assert flags.lookup("port").usage == "listen `port`"
    assert flags.lookup("timeout").value.get() == timedelta(seconds=90)
    assert flags.lookup("hosts").value.get() == ["a", "b"]
    assert flags.lookup("labels").value.get() == {"team": "core"}
    assert flags.lookup("token").sensitive
    assert flags.required == ["token"]


def test_manifest_checks_and_enum_apply(tmp_path: Path, make_flagset: Callable[..., FlagSet]) -> None:
    """Bounds become deferred checks and enums restrict values."""

    path = tmp_path / "flags.toml"
    path.write_text(TOML_MANIFEST, encoding="utf-8")
    flags = make_flagset()
    declare_manifest(flags, load_manifest(path))
    flags.parse(["-port", "0", "-token", "t0k3n"], environ={})
    with pytest.raises(MultiError, match="port: value 0 < min 1"):
        flags.validate()
    with pytest.raises(Exception, match="allowed: fast,safe"):
        flags.set("mode", "slow")
    assert flags.lookup("token").display_value() == MASK


def test_json_manifest(tmp_path: Path, make_flagset: Callable[..., FlagSet]) -> None:
    """JSON manifests use the same table layout."""

    path = tmp_path / "flags.json"
    path.write_text(json.dumps({"flags": {"debug": {"type": "bool", "default": True}}}), encoding="utf-8")
    flags = make_flagset()
    assert declare_manifest(flags, load_manifest(path)) == ["debug"]
    assert flags.lookup("debug").value.get() is True


def test_yaml_manifest(tmp_path: Path, make_flagset: Callable[..., FlagSet]) -> None:
    """YAML manifests are supported when PyYAML is installed."""

    pytest.importorskip("yaml")
    path = tmp_path / "flags.yaml"
    path.write_text("flags:\n  level:\n    type: uint\n    default: 3\n", encoding="utf-8")
    flags = make_flagset()
    declare_manifest(flags, load_manifest(path))
    assert flags.lookup("level").value.get() == 3


def test_yaml_without_pyyaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing PyYAML install is reported as a source error."""

    path = tmp_path / "flags.yml"
    path.write_text("flags: {}\n", encoding="utf-8")
    monkeypatch.setattr(structured_module, "yaml", None)
    with pytest.raises(SourceError, match="PyYAML is required"):
        YAMLManifestLoader().load(str(path))


@pytest.mark.parametrize(
    ("loader", "name", "content", "message"),
    [
        (TOMLManifestLoader(), "bad.toml", "[flags\n", "Invalid TOML"),
        (JSONManifestLoader(), "bad.json", "{", "Invalid JSON"),
        (JSONManifestLoader(), "list.json", "[1, 2]", "did not produce a mapping"),
    ],
)
def test_malformed_manifests(tmp_path: Path, loader, name: str, content: str, message: str) -> None:
    """Malformed documents raise SourceError."""

    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    with pytest.raises(SourceError, match=message):
        loader.load(str(path))


def test_missing_and_unsupported_files(tmp_path: Path) -> None:
    """Missing files and unknown suffixes are source errors."""

    with pytest.raises(SourceError, match="not found"):
        load_manifest(tmp_path / "absent.toml")
    other = tmp_path / "flags.ini"
    other.write_text("", encoding="utf-8")
    with pytest.raises(SourceError, match="Unsupported manifest format"):
        load_manifest(other)


def test_unknown_type_and_bad_entries(make_flagset: Callable[..., FlagSet]) -> None:
    """Unknown type names and non-table entries are rejected."""

    with pytest.raises(SourceError, match="unknown type 'complex'"):
        declare_manifest(make_flagset(), {"flags": {"x": {"type": "complex"}}})
    with pytest.raises(SourceError, match="must be a table"):
        declare_manifest(make_flagset(), {"flags": {"x": 3}})
    with pytest.raises(SourceError, match="'flags' must be a table"):
        declare_manifest(make_flagset(), {"flags": [1]})


def test_invalid_default_fails_fast(make_flagset: Callable[..., FlagSet]) -> None:
    """A default that does not parse names the manifest entry."""

    flags = make_flagset()
    manifest = {"flags": {"port": {"type": "int", "default": "NaN"}, "later": {"type": "string"}}}
    with pytest.raises(InvalidDefault, match="field flags.port"):
        declare_manifest(flags, manifest)
    assert flags.lookup("later") is None


def test_rational_manifest_type(make_flagset: Callable[..., FlagSet]) -> None:
    """``type = "rational"`` declares an exact fraction flag."""

    flags = make_flagset()
    declare_manifest(flags, {"flags": {"ratio": {"type": "rational", "default": "1/2"}}})
    assert flags.lookup("ratio").default == "1/2"
    flags.parse(["-ratio", "3/7"], environ={})
    assert str(flags.lookup("ratio").value) == "3/7"
