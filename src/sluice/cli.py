# src/sluice/cli.py
"""SLUICE Command Line Interface.

Entry point for the sluice CLI tool.
"""

import json
from pathlib import Path
from typing import NoReturn

import typer
import yaml
from pydantic import ValidationError as SettingsValidationError

from sluice import __version__, bootstrap
from sluice.contracts import (
    PackageIdentifier,
    PartialFailureError,
    SluiceError,
    UpdateRequest,
)
from sluice.core.config import SluiceSettings, load_settings, resolve_config
from sluice.core.logging import configure_logging
from sluice.core.registry import definition_from_settings

app = typer.Typer(
    name="sluice",
    help="SLUICE: Stream deployment orchestration.",
    no_args_is_help=True,
)

SETTINGS_OPTION = typer.Option(
    "settings.yaml",
    "--settings",
    "-s",
    help="Path to settings YAML file.",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sluice version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """SLUICE: Stream deployment orchestration."""
    pass


def _load(settings: str) -> SluiceSettings:
    """Load settings or exit with a readable error."""
    try:
        config = load_settings(Path(settings))
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except SettingsValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None
    configure_logging(config.logging)
    return config


def _fail(error: SluiceError) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    if isinstance(error, PartialFailureError):
        for label, cause in error.failures.items():
            typer.echo(f"  - {label}: {cause}", err=True)
    raise typer.Exit(1)


def _parse_properties(values: list[str]) -> dict[str, str]:
    properties: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{item}'")
        properties[key.strip()] = value
    return properties


@app.command()
def validate(
    settings: str = SETTINGS_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Also print the resolved configuration.",
    ),
) -> None:
    """Validate settings and every configured stream definition."""
    config = _load(settings)

    problems: list[str] = []
    for name, stream in config.streams.items():
        try:
            definition_from_settings(name, stream).validate()
        except SluiceError as e:
            problems.append(str(e))
    for name, refs in config.unregistered_apps().items():
        problems.append(f"Stream '{name}' uses unregistered app(s): {', '.join(refs)}")

    if problems:
        typer.echo("Stream definition errors:", err=True)
        for problem in problems:
            typer.echo(f"  - {problem}", err=True)
        raise typer.Exit(1)

    typer.echo("Configuration valid.")
    typer.echo(f"  Backend: {config.backend.kind.value}")
    typer.echo(f"  Streams: {', '.join(sorted(config.streams)) or '(none)'}")
    typer.echo(f"  Status pool: {config.status.pool_size} workers")
    if verbose:
        typer.echo("Resolved configuration:")
        typer.echo(yaml.safe_dump(resolve_config(config), sort_keys=False).rstrip())


@app.command()
def deploy(
    name: str = typer.Argument(..., help="Stream to deploy."),
    properties: list[str] = typer.Option(
        [],
        "--property",
        "-p",
        help="Deployment property as key=value (e.g. app.enrich.threads=4).",
    ),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Deploy a stream."""
    config = _load(settings)
    parsed = _parse_properties(properties)
    with bootstrap.build_runtime(config) as runtime:
        try:
            runtime.orchestrator.deploy(name, parsed)
        except SluiceError as e:
            _fail(e)
    typer.echo(f"Stream '{name}' deployed.")


@app.command()
def undeploy(
    name: str = typer.Argument(..., help="Stream to undeploy."),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Undeploy a stream (no-op when it is not deployed)."""
    config = _load(settings)
    with bootstrap.build_runtime(config) as runtime:
        try:
            runtime.orchestrator.undeploy(name)
        except SluiceError as e:
            _fail(e)
    typer.echo(f"Stream '{name}' undeployed.")


@app.command()
def status(
    name: str = typer.Argument(..., help="Stream to inspect."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Show aggregated live status of a stream."""
    config = _load(settings)
    with bootstrap.build_runtime(config) as runtime:
        try:
            result = runtime.orchestrator.status(name)
        except SluiceError as e:
            _fail(e)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    typer.echo(f"{result.stream_name}: {result.state.value}")
    for component in result.components:
        line = f"  {component.label:<20} {component.state.value:<11} {component.deployment_id or '-'}"
        if component.error:
            line = f"{line}  ({component.error})"
        typer.echo(line)


@app.command()
def update(
    name: str = typer.Argument(..., help="Stream to upgrade."),
    package_name: str = typer.Option(..., "--package-name", help="Package name."),
    package_version: str = typer.Option(..., "--package-version", help="Package version."),
    repository: str | None = typer.Option(None, "--repository", help="Package repository."),
    yaml_file: Path | None = typer.Option(
        None, "--yaml-file", help="YAML file with property overrides."
    ),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Upgrade a release-managed stream."""
    config = _load(settings)
    overrides = yaml_file.read_text() if yaml_file is not None else ""
    request = UpdateRequest(
        release_name=name,
        package_identifier=PackageIdentifier(
            name=package_name, version=package_version, repository=repository
        ),
        yaml_overrides=overrides,
    )
    with bootstrap.build_runtime(config) as runtime:
        try:
            runtime.orchestrator.update(name, request)
        except SluiceError as e:
            _fail(e)
    typer.echo(f"Stream '{name}' updated to {package_name} {package_version}.")


@app.command()
def rollback(
    name: str = typer.Argument(..., help="Stream to roll back."),
    version: int = typer.Argument(0, help="Release version (0 = previous)."),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Roll a release-managed stream back to an earlier version."""
    config = _load(settings)
    with bootstrap.build_runtime(config) as runtime:
        try:
            runtime.orchestrator.rollback(name, version)
        except SluiceError as e:
            _fail(e)
    typer.echo(f"Stream '{name}' rolled back.")


if __name__ == "__main__":
    app()
