# src/httpfakes/cli.py
"""CLI for serving fake HTTP services declared in YAML.

Useful for poking at a fixture by hand or for running a fake next to a
process that is not driven from Python tests.

Usage:
    httpfakes serve --config fakes.yaml               # Serve until Ctrl+C
    httpfakes serve --config fakes.yaml --port=8200   # Fixed port
    httpfakes serve --config fakes.yaml --duration=30 # Stop after 30 seconds
    httpfakes check --config fakes.yaml               # Validate and list endpoints
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Annotated, Any

import pydantic
import typer
import yaml

from httpfakes.config import FakeServiceConfig, load_config
from httpfakes.errors import FakeServiceError
from httpfakes.logging import LogLevel, configure_logging
from httpfakes.service import FakeService

app = typer.Typer(
    name="httpfakes",
    help="httpfakes: programmable fake HTTP services for tests.",
    no_args_is_help=True,
)

ConfigFileOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Path to YAML configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]


def _load(config_file: Path, overrides: dict[str, Any] | None = None) -> FakeServiceConfig:
    try:
        return load_config(config_file=config_file, overrides=overrides)
    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e
    except (pydantic.ValidationError, yaml.YAMLError, ValueError) as e:
        typer.secho(f"Configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e


def _describe(config: FakeServiceConfig) -> None:
    for endpoint in config.endpoints:
        methods = ",".join(endpoint.methods) if endpoint.methods else "ANY"
        line = f"  {methods:<12} {endpoint.path}"
        if endpoint.failure_rate_percent > 0 and endpoint.failure is not None:
            budget = endpoint.max_failure_count if endpoint.max_failure_count is not None else config.default_max_failure_count
            line += f"  (chaos {endpoint.failure_rate_percent}% -> {endpoint.failure.status_code}, max {budget})"
        typer.echo(line)


@app.command()
def serve(
    config_file: ConfigFileOption,
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host address to bind to."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-P", help="Port to listen on (0 = any free port).", min=0, max=65535),
    ] = None,
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="Seed for the failure draw."),
    ] = None,
    duration: Annotated[
        float | None,
        typer.Option("--duration", help="Stop after this many seconds instead of waiting for Ctrl+C.", min=0.0),
    ] = None,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", "-l", case_sensitive=False, help="Minimum level of log records."),
    ] = LogLevel.INFO,
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit logs as JSON."),
    ] = False,
) -> None:
    """Serve the endpoints declared in a config file.

    On shutdown every endpoint's call count is printed and coverage is
    verified; the exit code is 1 if any endpoint was never called.
    """
    overrides: dict[str, Any] = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if seed is not None:
        overrides["seed"] = seed

    config = _load(config_file, overrides)
    configure_logging(json_output=json_logs, level=log_level)

    try:
        service = FakeService.from_config(config).run()
    except FakeServiceError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e

    typer.secho(f"Serving {len(service.endpoints)} endpoint(s) at {service.base_url}", fg=typer.colors.GREEN)
    _describe(config)

    stop = threading.Event()
    try:
        stop.wait(timeout=duration)
    except KeyboardInterrupt:
        typer.echo()

    typer.echo("Calls:")
    for endpoint in service.endpoints:
        typer.echo(f"  {endpoint.calls:>5}  {endpoint.label}  (failures: {endpoint.failures})")

    try:
        service.tidy_up()
    except (AssertionError, ExceptionGroup) as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e


@app.command()
def check(config_file: ConfigFileOption) -> None:
    """Validate a config file and list the endpoints it declares."""
    config = _load(config_file)
    try:
        FakeService.from_config(config)
    except FakeServiceError as e:
        typer.secho(f"Configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e

    typer.secho(f"{config_file}: {len(config.endpoints)} endpoint(s)", fg=typer.colors.GREEN)
    _describe(config)


def main() -> None:
    """Entry point for httpfakes CLI."""
    app()


if __name__ == "__main__":
    main()
