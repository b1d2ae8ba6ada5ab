# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""probekit CLI - run probe operations and print their JSON results"""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import click
import yaml

# Force UTF-8 encoding for Windows
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from probekit import __version__
from probekit.core.adapters.registry import MappingKeyStore, RegistryQueryService
from probekit.core.config import get_config, reload_config
from probekit.core.exceptions import (
    InvalidRequestError,
    ProbeError,
    UnsupportedOperationError,
)
from probekit.core.facade import ProbeFacade
from probekit.core.logger import get_logger
from probekit.core.models import ErrorEnvelope, OperationKind

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2

EXEC_KINDS = [k.value for k in OperationKind if k.is_process]


def run_cancellable(operation: Callable[[asyncio.Event], Awaitable[str]]) -> str:
    """Run an operation with Ctrl-C wired to its cancel event"""

    async def _main():
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel.set)
            installed = True
        except (NotImplementedError, RuntimeError):
            # No loop signal handlers on Windows; Ctrl-C cancels the task instead
            installed = False
        try:
            return await operation(cancel)
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

    return asyncio.run(_main())


def exit_code_for(output: str) -> int:
    data = json.loads(output)
    if isinstance(data, dict):
        if "success" in data:
            return EXIT_OK if data["success"] else EXIT_FAILED
        if set(data) == {"error"}:
            return EXIT_FAILED
    return EXIT_OK


def emit(operation: Callable[[asyncio.Event], Awaitable[str]]):
    """Run, print the JSON result and exit with its status"""
    try:
        output = run_cancellable(operation)
    except (InvalidRequestError, UnsupportedOperationError) as e:
        click.echo(ErrorEnvelope(error=e.to_error_info()).to_json())
        sys.exit(EXIT_INVALID)
    except ProbeError as e:
        click.echo(ErrorEnvelope(error=e.to_error_info()).to_json())
        sys.exit(EXIT_FAILED)

    click.echo(output)
    sys.exit(exit_code_for(output))


def parse_env(pairs: Tuple[str, ...]) -> Optional[Dict[str, str]]:
    if not pairs:
        return None
    env: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value
    return env


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Config file (YAML)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Override configured log level",
)
def cli(config_file: Optional[str], log_level: Optional[str]):
    """probekit - normalized, timeout-safe probes for this host.

    Every command prints one JSON document on stdout; logs go to stderr.

    Exit codes: 0 success, 1 operation failed, 2 invalid request.
    """
    try:
        config = reload_config(Path(config_file)) if config_file else get_config()
    except ProbeError as e:
        click.echo(f"[-] {e}", err=True)
        sys.exit(EXIT_INVALID)

    observability = config.observability
    get_logger(
        "probekit",
        level=log_level or observability.log_level,
        log_dir=observability.log_dir,
        file_output=observability.file_logging,
    )


@cli.command("exec")
@click.argument("kind", type=click.Choice(EXEC_KINDS))
@click.argument("command")
@click.option("--cwd", type=click.Path(file_okay=False), help="Working directory")
@click.option("--env", "env_pairs", multiple=True, help="Environment overlay KEY=VALUE")
@click.option("--timeout", type=float, help="Timeout in seconds")
@click.option("--login", is_flag=True, help="Use a login shell")
@click.option("--interpreter", help="Interpreter or shell path override")
@click.option("--no-stderr", is_flag=True, help="Do not capture stderr")
def exec_command(
    kind: str,
    command: str,
    cwd: Optional[str],
    env_pairs: Tuple[str, ...],
    timeout: Optional[float],
    login: bool,
    interpreter: Optional[str],
    no_stderr: bool,
):
    """Run COMMAND with a shell or interpreter executor.

    Examples:
        probekit exec shell "echo hello"
        probekit exec python "import sys; print(sys.version)" --timeout 5
        probekit exec powershell "Get-Date" --env LANG=C
    """
    request: Dict[str, Any] = {
        "command": command,
        "workingDirectory": cwd,
        "environment": parse_env(env_pairs),
        "timeout": timeout,
        "useLoginShell": login,
        "interpreterPath": interpreter,
        "captureStdErr": not no_stderr,
    }
    facade = ProbeFacade()
    emit(lambda cancel: facade.execute(kind, request, cancel))


@cli.command()
@click.argument("query")
@click.option("--namespace", "-n", help="WMI namespace (default root\\cimv2)")
@click.option("--timeout", type=float, help="Timeout in seconds")
def wmi(query: str, namespace: Optional[str], timeout: Optional[float]):
    """Run a WQL QUERY against local WMI (Windows only).

    Example:
        probekit wmi "SELECT Name, Version FROM Win32_OperatingSystem"
    """
    request: Dict[str, Any] = {"query": query, "timeout": timeout}
    if namespace:
        request["namespace"] = namespace
    facade = ProbeFacade()
    emit(lambda cancel: facade.execute(OperationKind.WMI, request, cancel))


@cli.command()
@click.argument("root")
@click.option("--max-depth", "-d", type=int, default=2, show_default=True)
@click.option("--no-values", is_flag=True, help="Only read the key structure")
@click.option(
    "--snapshot",
    type=click.Path(exists=True, dir_okay=False),
    help="Read from a YAML/JSON key-tree snapshot instead of the live registry",
)
def registry(root: str, max_depth: int, no_values: bool, snapshot: Optional[str]):
    """Read the registry tree under ROOT (e.g. HKLM\\SOFTWARE\\Vendor)."""
    request = {"rootKeyPath": root, "maxDepth": max_depth, "includeValues": not no_values}

    async def _query(cancel: asyncio.Event) -> str:
        service = None
        if snapshot:
            service = RegistryQueryService(MappingKeyStore.from_file(Path(snapshot)))
        facade = ProbeFacade(registry=service)
        return await facade.execute(OperationKind.REGISTRY, request, cancel)

    emit(_query)


@cli.command()
@click.argument("root")
@click.option("--max-depth", "-d", type=int, default=3, show_default=True)
@click.option("--ext", "extensions", multiple=True, help="Only files with this extension")
@click.option("--follow-symlinks", is_flag=True, help="Descend into symlinked directories")
@click.option("--include-hidden", is_flag=True, help="Include hidden files and directories")
def scan(
    root: str,
    max_depth: int,
    extensions: Tuple[str, ...],
    follow_symlinks: bool,
    include_hidden: bool,
):
    """List files under ROOT to a bounded depth.

    Examples:
        probekit scan /var/log --ext log --max-depth 1
        probekit scan . --include-hidden
    """
    request = {
        "rootPath": root,
        "maxDepth": max_depth,
        "includeExtensions": list(extensions) or None,
        "followSymlinks": follow_symlinks,
        "includeHidden": include_hidden,
    }
    facade = ProbeFacade()
    emit(lambda cancel: facade.execute(OperationKind.FILESYSTEM, request, cancel))


@cli.command()
@click.argument("file", type=click.File("r", encoding="utf-8"), default="-")
def run(file):
    """Run a tagged request from FILE (JSON or YAML, '-' for stdin).

    Format:
        {"kind": "shell", "request": {"command": "uname -a"}}
    """
    try:
        data = yaml.safe_load(file.read())
    except yaml.YAMLError as e:
        click.echo(
            ErrorEnvelope(
                error=InvalidRequestError(f"Cannot parse request: {e}").to_error_info()
            ).to_json()
        )
        sys.exit(EXIT_INVALID)

    facade = ProbeFacade()
    emit(lambda cancel: facade.execute_request(data, cancel))


if __name__ == "__main__":
    cli()
