"""Thin CLI wrapper for plugin_matrix.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from plugin_matrix import __version__
from plugin_matrix.commands import dispatch
from plugin_matrix.config import get_settings, print_settings_json
from plugin_matrix.context import (
    BuildCommand,
    Command,
    DeployCommand,
    GenerateCommand,
    RunConfig,
    SetupCommand,
    TestCommand,
    create_run_context,
)
from plugin_matrix.matrix.models import ParseError
from plugin_matrix.types import Channel

app = typer.Typer(
    name="plugin-matrix",
    help="Build, test and release an IDE plugin across a product matrix",
    no_args_is_help=True,
)
console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

IntelliJOption = Annotated[
    bool,
    typer.Option("--ij/--no-ij", help="Select IntelliJ targets"),
]
AndroidStudioOption = Annotated[
    bool,
    typer.Option("--as/--no-as", help="Select Android Studio targets"),
]
ChannelOption = Annotated[
    Channel,
    typer.Option("--channel", "-c", help="Distribution channel"),
]
SetupOption = Annotated[
    bool,
    typer.Option("--setup/--no-setup", help="Unpack the unit-test target afterwards"),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"plugin-matrix version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    release: Annotated[
        str | None,
        typer.Option("--release", "-r", help="Release identifier (major.minor)"),
    ] = None,
    cwd: Annotated[
        Path | None,
        typer.Option("--cwd", help="Working directory (enables test mode)"),
    ] = None,
) -> None:
    """Build, test and release an IDE plugin across a product matrix."""
    ctx.obj = {"release": release, "cwd": cwd}


def _run(
    ctx: typer.Context,
    command: Command,
    channel: Channel = Channel.STABLE,
    ij: bool = True,
    android_studio: bool = True,
) -> None:
    """Build the run configuration and context, dispatch, and exit."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    options = ctx.obj or {}
    cwd: Path | None = options.get("cwd")
    release = options.get("release") or settings.release

    try:
        context = create_run_context(settings, cwd)
    except ParseError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    config = RunConfig.create(
        command,
        channel=channel,
        release=release,
        ij=ij,
        android_studio=android_studio,
        test_mode=cwd is not None or settings.root_dir is not None,
    )
    status = dispatch(config, context)
    if status != 0:
        console.print(f"[red]{config.kind.value} failed with status {status}[/red]")
    raise typer.Exit(code=status)


def build(
    ctx: typer.Context,
    ij: IntelliJOption = True,
    android_studio: AndroidStudioOption = True,
    channel: ChannelOption = Channel.STABLE,
    only_version: Annotated[
        str | None,
        typer.Option("--only-version", "-o", help="Only build the specified version"),
    ] = None,
    unpack: Annotated[
        bool,
        typer.Option("--unpack", "-u", help="Unpack artifacts even if the cache is fresh"),
    ] = False,
    minor: Annotated[
        int | None,
        typer.Option("--minor", "-m", help="Set the minor version number"),
    ] = None,
    setup: SetupOption = True,
) -> None:
    """Build a deployable version of the plugin for every selected target."""
    command = BuildCommand(
        only_version=only_version, unpack=unpack, minor=minor, setup=setup
    )
    _run(ctx, command, channel, ij, android_studio)


app.command("make")(build)
app.command("build")(build)


@app.command()
def test(
    ctx: typer.Context,
    unit: Annotated[bool, typer.Option("--unit", help="Run unit tests")] = False,
    integration: Annotated[
        bool, typer.Option("--integration", help="Run integration tests")
    ] = False,
    skip: Annotated[
        bool,
        typer.Option("--skip", "-s", help="Do not run tests, just unpack artifacts"),
    ] = False,
    setup: SetupOption = True,
) -> None:
    """Run the tests for the plugin."""
    command = TestCommand(unit=unit, integration=integration, skip=skip, setup=setup)
    _run(ctx, command)


@app.command()
def deploy(
    ctx: typer.Context,
    ij: IntelliJOption = True,
    android_studio: AndroidStudioOption = True,
    channel: ChannelOption = Channel.STABLE,
) -> None:
    """Upload the plugin archives to the marketplace."""
    _run(ctx, DeployCommand(), channel, ij, android_studio)


@app.command()
def generate(ctx: typer.Context) -> None:
    """Generate plugin.xml, the CI workflow and the live-template library."""
    _run(ctx, GenerateCommand())


@app.command()
def setup(ctx: typer.Context) -> None:
    """Unpack the artifacts required to debug the plugin."""
    _run(ctx, SetupCommand())


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    token_display = "(set)" if settings.read_upload_token() else "(not set)"
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Root directory:      {settings.root_dir or '(cwd)'}")
    console.print(f"  Product matrix:      {settings.matrix_file}")
    console.print(f"  Edit set:            {settings.edits_file}")
    console.print(f"  Artifacts directory: {settings.artifacts_dir}")
    console.print(f"  Releases directory:  {settings.releases_dir}")
    console.print(f"  Build directory:     {settings.build_dir}")
    console.print()
    console.print("[bold]Release:[/bold]")
    console.print(f"  Release:             {settings.release or '(none)'}")
    console.print(f"  Upload URL:          {settings.upload_url}")
    console.print(f"  Upload token:        {token_display}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Offline mode:        {settings.offline}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  JAVA_HOME:           {settings.java_home or '(not set)'}")
    console.print(f"  Download timeout:    {settings.download_timeout}")


if __name__ == "__main__":
    app()
