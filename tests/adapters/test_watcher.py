"""Change watcher tests.

Most scenarios call :meth:`ChangeWatcher.reload` and :meth:`ChangeWatcher.check`
directly so they run without timing assumptions; one test exercises the
background threads end to end.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Mapping

import pytest

from lib_layered_flags.adapters.watcher.default import ChangeWatcher, fingerprint
from lib_layered_flags.application.registry import FlagSet
from lib_layered_flags.domain.flag import Source

WriteSecrets = Callable[[Mapping[str, str]], Path]


def _resolved(make_flagset: Callable[..., FlagSet], arguments: list[str], environ: dict[str, str]) -> FlagSet:
    flags = make_flagset()
    flags.string("secret-dir")
    flags.string("config")
    flags.string("token")
    flags.integer("workers", 1)
    flags.string("mode", "auto")
    flags.parse(arguments, environ=environ)
    return flags


def test_fingerprint_tracks_content(write_secrets: WriteSecrets, write_config: Callable[..., Path]) -> None:
    """Fingerprints change with file content and tolerate missing paths."""

    directory = write_secrets({"token": "a"})
    config = write_config("workers 2")
    first = fingerprint(directory, config)
    assert set(first) == {str(directory / "token"), str(config)}
    (directory / "token").write_text("b", encoding="utf-8")
    assert fingerprint(directory, config) != first
    assert fingerprint(directory / "absent", None) == {}


def test_reload_picks_up_new_values(
    make_flagset: Callable[..., FlagSet], write_secrets: WriteSecrets, write_config: Callable[..., Path]
) -> None:
    """Secret and config values are re-read and changed flags reported."""

    directory = write_secrets({"token": "old"})
    config = write_config("workers 2")
    flags = _resolved(make_flagset, ["-secret-dir", str(directory), "-config", str(config)], {})
    assert flags.lookup("workers").value.get() == 2

    watcher = ChangeWatcher(flags, secret_dir=directory, config_file=config)
    (directory / "token").write_text("new\n", encoding="utf-8")
    config.write_text("workers 4\n", encoding="utf-8")
    assert sorted(watcher.reload()) == ["token", "workers"]
    assert flags.lookup("token").value.get() == "new"
    assert flags.lookup("workers").value.get() == 4
    assert flags.source_of("workers") is Source.CONFIG


def test_cli_and_env_values_stay_pinned(
    make_flagset: Callable[..., FlagSet], write_secrets: WriteSecrets, write_config: Callable[..., Path]
) -> None:
    """Reloads never override higher-precedence sources."""

    directory = write_secrets({"token": "from-secret"})
    config = write_config("workers 2")
    flags = _resolved(make_flagset, ["-token", "from-cli"], {"WORKERS": "8", "SECRET_DIR": str(directory)})
    watcher = ChangeWatcher(flags, secret_dir=directory, config_file=config)
    (directory / "token").write_text("changed", encoding="utf-8")
    assert watcher.reload() == []
    assert flags.lookup("token").value.get() == "from-cli"
    assert flags.lookup("workers").value.get() == 8
    assert flags.source_of("workers") is Source.ENV


def test_removed_values_keep_last_state(
    make_flagset: Callable[..., FlagSet], write_secrets: WriteSecrets, write_config: Callable[..., Path]
) -> None:
    """A flag no source supplies any more keeps its value and provenance."""

    directory = write_secrets({"token": "kept"})
    config = write_config("mode manual")
    flags = _resolved(make_flagset, ["-secret-dir", str(directory), "-config", str(config)], {})
    watcher = ChangeWatcher(flags, secret_dir=directory, config_file=config)
    (directory / "token").unlink()
    config.write_text("\n", encoding="utf-8")
    assert watcher.reload() == []
    assert flags.lookup("token").value.get() == "kept"
    assert flags.source_of("token") is Source.SECRET
    assert flags.lookup("mode").value.get() == "manual"
    assert flags.source_of("mode") is Source.CONFIG


def test_reload_errors_are_logged_not_raised(
    make_flagset: Callable[..., FlagSet],
    write_config: Callable[..., Path],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A broken config file is reported through logging and the old value stays."""

    config = write_config("workers 2")
    flags = _resolved(make_flagset, ["-config", str(config)], {})
    watcher = ChangeWatcher(flags, config_file=config)
    config.write_text("workers lots\n", encoding="utf-8")
    caplog.set_level(logging.ERROR, logger="lib_layered_flags")
    watcher.reload()
    assert any(record.getMessage() == "watcher_error" for record in caplog.records)
    assert flags.lookup("workers").value.get() == 2
    assert flags.source_of("workers") is Source.CONFIG


def test_check_only_reloads_on_change(
    make_flagset: Callable[..., FlagSet], write_config: Callable[..., Path]
) -> None:
    """check() is a no-op while fingerprints are unchanged."""

    config = write_config("workers 2")
    flags = _resolved(make_flagset, ["-config", str(config)], {})
    watcher = ChangeWatcher(flags, config_file=config)
    assert watcher.check() == []
    config.write_text("workers 3\n", encoding="utf-8")
    assert watcher.check() == ["workers"]
    assert watcher.check() == []


def test_background_threads_deliver_callbacks(
    make_flagset: Callable[..., FlagSet], write_config: Callable[..., Path]
) -> None:
    """The poller detects the change and the dispatcher calls the callback."""

    config = write_config("workers 2")
    flags = _resolved(make_flagset, ["-config", str(config)], {})
    received: list[str] = []
    delivered = threading.Event()

    def _callback(value: str) -> None:
        received.append(value)
        delivered.set()

    flags.on_change("workers", _callback)
    watcher = flags.start_watcher(interval=0.05)
    try:
        assert watcher.running
        config.write_text("workers 5\n", encoding="utf-8")
        assert delivered.wait(timeout=10)
    finally:
        flags.stop_watcher()
    assert received == ["5"]
    assert not watcher.running


def test_callback_failures_are_contained(
    make_flagset: Callable[..., FlagSet],
    write_config: Callable[..., Path],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A raising callback is logged and later callbacks still run."""

    config = write_config("workers 2")
    flags = _resolved(make_flagset, ["-config", str(config)], {})
    delivered = threading.Event()

    def _broken(value: str) -> None:
        raise RuntimeError("boom")

    flags.on_change("workers", _broken)
    flags.on_change("workers", lambda value: delivered.set())
    caplog.set_level(logging.ERROR, logger="lib_layered_flags")
    watcher = ChangeWatcher(flags, config_file=config, interval=60)
    watcher.start()
    try:
        config.write_text("workers 9\n", encoding="utf-8")
        watcher.reload()
        assert delivered.wait(timeout=10)
    finally:
        watcher.stop()
    assert any(record.getMessage() == "watch_callback_failed" for record in caplog.records)


def test_reload_survives_oversized_values(
    make_flagset: Callable[..., FlagSet],
    write_config: Callable[..., Path],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A size too large to represent is logged as a reload error and the watcher keeps working."""

    config = write_config("cache 1KiB")
    flags = make_flagset()
    flags.string("config")
    cache = flags.byte_size("cache")
    flags.parse(["-config", str(config)], environ={})
    watcher = ChangeWatcher(flags, config_file=config)

    config.write_text("cache " + "9" * 400 + "\n", encoding="utf-8")
    caplog.set_level(logging.ERROR, logger="lib_layered_flags")
    assert watcher.check() == []
    assert any(record.getMessage() == "watcher_error" for record in caplog.records)
    assert cache.get() == 1024

    config.write_text("cache 2KiB\n", encoding="utf-8")
    assert watcher.check() == ["cache"]
    assert cache.get() == 2048
