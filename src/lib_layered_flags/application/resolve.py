"""Resolution orchestrator.

Purpose
-------
Sequence the source passes in precedence order: command line, environment,
secret directory, config file. Each pass writes only flags that no earlier pass
supplied, so running them in this order is what makes the command line beat
the environment, the environment beat secrets, and so on down to defaults.

The secret directory and config file passes are gated by controlling flags
(``secret-dir`` and ``config`` unless the registry names others). Their values
are read after the earlier passes ran, so each controlling flag may come from
any higher-precedence source, or from its declared default.

Contents
--------
* :class:`Resolver` – holds the four passes and runs them in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from ..adapters.arguments.default import parse_arguments
from ..adapters.config_file.default import parse_config_file
from ..adapters.env.default import parse_environment
from ..adapters.secret_dir.default import parse_secret_directory
from ..observability import log_info, make_event

if TYPE_CHECKING:
    from .registry import FlagSet


@dataclass(frozen=True, slots=True)
class Resolver:
    """The four source passes, replaceable for tests or alternative adapters."""

    arguments: Callable[[Any, Sequence[str]], list[str]] = parse_arguments
    environment: Callable[[Any, Mapping[str, str] | None], None] = parse_environment
    secret_dir: Callable[[Any, Any], None] = parse_secret_directory
    config_file: Callable[[Any, Any], None] = parse_config_file

    def resolve(self, flagset: FlagSet, arguments: Sequence[str], environ: Mapping[str, str] | None = None) -> list[str]:
        """Run every pass against *flagset* and return the positional arguments.

        The first failing pass raises; later passes do not run.
        """

        positional = self.arguments(flagset, arguments)
        self.environment(flagset, environ)

        secret_dir = flagset.controlling_path(flagset.secret_dir_flag)
        if secret_dir:
            self.secret_dir(flagset, secret_dir)

        config_file = flagset.controlling_path(flagset.config_flag)
        if config_file:
            self.config_file(flagset, config_file)

        log_info(
            "resolution_completed",
            **make_event(
                "resolve",
                config_file or None,
                {"flags": flagset.nflag(), "secret_dir": secret_dir or None, "positional": len(positional)},
            ),
        )
        return positional
