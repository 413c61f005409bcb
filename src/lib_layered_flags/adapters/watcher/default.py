"""Change watcher for the secret directory and config file.

Purpose
-------
Poll the secret directory and config file, and re-run their passes when their
content changes. Callers learn about new values through per-flag callbacks
registered with :meth:`FlagSet.on_change`.

Key behaviours
--------------
* Changes are detected by SHA-256 fingerprints of file content, polled every
  ``interval`` seconds on a daemon thread.
* A reload holds the registry lock. It releases flags whose provenance is
  ``secret`` or ``config`` and runs the secret and config passes again. Flags
  supplied by the command line or environment stay pinned. A flag no source
  supplies any more keeps its last value and provenance.
* Each changed flag gets a new version number and goes onto a queue. A
  dispatcher thread delivers callbacks and skips versions older than the
  last one delivered for that flag.
* Callback exceptions and reload failures are logged and never stop the loop.
"""

from __future__ import annotations

import hashlib
import queue
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable, NamedTuple

from ...domain.errors import FlagError
from ...domain.flag import Source
from ...observability import log_error, log_info, make_event
from ..config_file.default import parse_config_file
from ..secret_dir.default import parse_secret_directory

if TYPE_CHECKING:
    from ...application.registry import FlagSet

_RELOADABLE = (Source.SECRET, Source.CONFIG)


class Change(NamedTuple):
    name: str
    version: int
    value: str


def fingerprint(secret_dir: Path | None, config_file: Path | None) -> dict[str, str]:
    """Return ``{path: sha256}`` for the watched files; unreadable files are omitted."""

    paths: list[Path] = []
    if secret_dir is not None:
        try:
            paths.extend(sorted(entry for entry in secret_dir.iterdir() if entry.is_file()))
        except OSError:
            pass
    if config_file is not None and config_file.is_file():
        paths.append(config_file)
    digests: dict[str, str] = {}
    for path in paths:
        try:
            digests[str(path)] = hashlib.sha256(path.read_bytes()).hexdigest()
        except OSError:
            continue
    return digests


class ChangeWatcher:
    """Background poller that reloads a registry when watched files change."""

    def __init__(
        self,
        flagset: FlagSet,
        *,
        secret_dir: str | Path | None = None,
        config_file: str | Path | None = None,
        interval: float = 1.0,
        secret_pass: Callable[..., None] = parse_secret_directory,
        config_pass: Callable[..., None] = parse_config_file,
    ) -> None:
        self.flagset = flagset
        self.secret_dir = Path(secret_dir) if secret_dir else None
        self.config_file = Path(config_file) if config_file else None
        self.interval = interval
        self._secret_pass = secret_pass
        self._config_pass = config_pass
        self._stop = threading.Event()
        self._queue: queue.Queue[Change | None] = queue.Queue()
        self._versions: dict[str, int] = {}
        self._delivered: dict[str, int] = {}
        self._last = fingerprint(self.secret_dir, self.config_file)
        self._poller: threading.Thread | None = None
        self._dispatcher: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._poller is not None and self._poller.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._last = fingerprint(self.secret_dir, self.config_file)
        self._poller = threading.Thread(target=self._poll, name="lib_layered_flags-watcher", daemon=True)
        self._dispatcher = threading.Thread(target=self._dispatch, name="lib_layered_flags-dispatch", daemon=True)
        self._dispatcher.start()
        self._poller.start()
        log_info("watcher_started", **self._event({"secret_dir": str(self.secret_dir) if self.secret_dir else None}))

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop polling and dispatching; an in-flight reload finishes first."""

        self._stop.set()
        self._queue.put(None)
        for thread in (self._poller, self._dispatcher):
            if thread is not None:
                thread.join(timeout)
        self._poller = self._dispatcher = None

    def check(self) -> list[str]:
        """Reload if the fingerprints changed since the last check; return changed flag names."""

        current = fingerprint(self.secret_dir, self.config_file)
        if current == self._last:
            return []
        self._last = current
        return self.reload()

    def reload(self) -> list[str]:
        """Re-run the secret and config passes and queue a change per modified flag."""

        flagset = self.flagset
        with flagset.lock:
            before = {name: str(flag.value) for name, flag in flagset.formal.items()}
            released = {name: flagset.source_of(name) for name in before if flagset.source_of(name) in _RELOADABLE}
            for name in released:
                flagset.release(name)
            try:
                if self.secret_dir is not None:
                    self._secret_pass(flagset, self.secret_dir)
                if self.config_file is not None:
                    self._config_pass(flagset, self.config_file)
            except FlagError as exc:
                log_error("watcher_error", **self._event({"error": flagset.redact(str(exc))}))
            finally:
                for name, source in released.items():
                    if not flagset.is_set(name):
                        flagset.mark(name, source)
            changed = [name for name, flag in flagset.formal.items() if str(flag.value) != before.get(name)]
            for name in changed:
                version = self._versions.get(name, 0) + 1
                self._versions[name] = version
                self._queue.put(Change(name, version, str(flagset.formal[name].value)))
        log_info("watcher_reload", **self._event({"changed": changed}))
        return changed

    def _event(self, payload: dict[str, object]) -> dict[str, object]:
        return make_event("watcher", str(self.config_file) if self.config_file else None, payload)

    def _poll(self) -> None:
        while not self._stop.wait(self.interval):
            self.check()

    def _dispatch(self) -> None:
        while True:
            change = self._queue.get()
            if change is None:
                return
            if change.version <= self._delivered.get(change.name, 0):
                continue
            self._delivered[change.name] = change.version
            for callback in self.flagset.change_callbacks(change.name):
                try:
                    callback(change.value)
                except Exception as exc:  # noqa: BLE001
                    log_error("watch_callback_failed", flag=change.name, version=change.version, error=str(exc))
