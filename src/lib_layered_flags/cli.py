"""CLI adapter for ``lib_layered_flags`` built on ``lib_cli_exit_tools``.

Purpose
-------
Let operators check how a flag would resolve without writing Python: which
environment variable feeds a flag, what an ``@file`` reference expands to, how
a byte size parses, and what a whole manifest of flags resolves to against the
current command line, environment, secret directory and config file.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command that wires global traceback handling into
  ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata for quick diagnostics.
* :func:`cli_env_name` – exposes :func:`lib_layered_flags.adapters.env.default.env_key`.
* :func:`cli_expand` – runs ``@file`` indirection on a value.
* :func:`cli_bytesize` – prints the byte count of a size string.
* :func:`cli_resolve` – declares flags from a manifest, resolves and validates
  them, and prints the introspection snapshot as JSON.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
The CLI lives in the outermost layer. It builds its own ``CONTINUE`` registry
per invocation so failures become Click errors instead of exiting from inside
the library. ``lib_cli_exit_tools`` centralises the exit code strategy.
"""

from __future__ import annotations

import io
import json
import sys
from importlib import metadata
from pathlib import Path
from typing import Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .adapters.env.default import env_key
from .adapters.indirection.default import resolve_value
from .adapters.manifest.structured import declare_manifest, load_manifest
from .application.registry import ErrorHandling, FlagSet
from .domain.errors import FlagError, HelpRequested
from .domain.units import parse_byte_size
from .observability import bind_trace_id

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` when metadata is missing."""

    try:
        return metadata.version("lib_layered_flags")
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Layered flag resolver: command line, environment, secret directory, config file, defaults",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="lib_layered_flags",
    message="lib_layered_flags version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command configuring traceback handling for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata("lib_layered_flags")
    except metadata.PackageNotFoundError:
        click.echo("lib_layered_flags (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', 'lib_layered_flags')}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("env-name", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.option("--prefix", default="", help="Environment prefix of the registry")
def cli_env_name(name: str, prefix: str) -> None:
    """Print the environment variable consulted for flag *name*.

    Examples
    --------
    >>> from click.testing import CliRunner
    >>> result = CliRunner().invoke(cli, ["env-name", "db.port", "--prefix", "app"])
    >>> result.output.strip()
    'APP_DB_PORT'
    """

    click.echo(env_key(name, prefix))


@cli.command("expand", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("value")
def cli_expand(value: str) -> None:
    """Print *value* after ``@file`` indirection (``@@x`` prints ``@x``)."""

    try:
        click.echo(resolve_value(value))
    except FlagError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("bytesize", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("value")
def cli_bytesize(value: str) -> None:
    """Print the number of bytes *value* (``10MB``, ``1.5GiB``, ``512``) stands for."""

    try:
        click.echo(int(parse_byte_size(value)))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="VALUE") from exc


@cli.command(
    "resolve",
    context_settings={**CLICK_CONTEXT_SETTINGS, "ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option(
    "--manifest",
    "manifest",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    required=True,
    help="TOML, JSON or YAML file declaring the flags under [flags.<name>]",
)
@click.option("--prefix", default="", help="Environment variable prefix")
@click.option(
    "--indent",
    type=int,
    default=None,
    help="Pretty-print JSON output with the provided indent size",
)
@click.option("--trace-id", default=None, help="Trace identifier attached to log events")
@click.argument("arguments", nargs=-1, type=click.UNPROCESSED)
def cli_resolve(
    manifest: Path,
    prefix: str,
    indent: Optional[int],
    trace_id: Optional[str],
    arguments: Sequence[str],
) -> None:
    """Resolve the flags declared in *manifest* and print them as JSON.

    ARGUMENTS are parsed as the program's command line (``-port 9000``); the
    environment, the ``secret-dir`` and ``config`` flags then fill in the rest.
    Sensitive values are masked in the output.
    """

    bind_trace_id(trace_id)
    buffer = io.StringIO()
    flags = FlagSet(manifest.stem, ErrorHandling.CONTINUE, env_prefix=prefix, output=buffer)
    try:
        declare_manifest(flags, load_manifest(manifest), origin=str(manifest))
        flags.parse(list(arguments))
        flags.finalize()
    except HelpRequested:
        click.echo(buffer.getvalue(), nl=False)
        return
    except FlagError as exc:
        raise click.ClickException(flags.redact(str(exc))) from exc
    payload = {"flags": [meta.as_dict() for meta in flags.introspect()], "args": flags.args()}
    click.echo(json.dumps(payload, indent=indent, separators=(",", ":") if indent is None else None))


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="lib_layered_flags",
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
