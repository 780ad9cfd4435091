"""contentloom CLI entry point."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from contentloom import __version__
from contentloom.errors import ConfigurationError, ContentloomError

logger = logging.getLogger("contentloom")


def _setup_logging(*, verbose: bool) -> None:
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        show_time=verbose,
        rich_tracebacks=verbose,
    )
    root = logging.getLogger("contentloom")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False


@click.group()
@click.version_option(version=__version__, prog_name="contentloom")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool) -> None:
    """contentloom - keeps your content index, schema and client in sync."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose=verbose)


_ROOT_PATH = click.option(
    "--root-path",
    "--rootPath",
    "root_path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)


@click.command()
@click.option(
    "--port", "-p", default=4001, show_default=True, type=int, help="Port for the dev server."
)
@click.option("--command", "-c", "sub_command", default=None, help="The sub-command to run.")
@_ROOT_PATH
@click.option(
    "--watch-folders",
    "--watchFolders",
    "-w",
    "watch_folders",
    default=None,
    hidden=True,
    help="Deprecated; ignored.",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option(
    "--no-watch", "--noWatch", "no_watch", is_flag=True, help="Don't rebuild on file changes."
)
@click.option(
    "--no-sdk", "--noSDK", "no_sdk", is_flag=True, help="Don't generate the client SDK."
)
@click.pass_context
def dev(
    ctx: click.Context,
    *,
    port: int,
    sub_command: str | None,
    root_path: Path | None,
    watch_folders: str | None,
    verbose: bool,
    no_watch: bool,
    no_sdk: bool,
) -> None:
    """Build everything once, start the dev server and keep it in sync."""
    from contentloom.dev.session import DevOptions, DevSession

    verbose = verbose or bool(ctx.obj and ctx.obj.get("verbose"))
    if verbose:
        _setup_logging(verbose=True)
    if watch_folders:
        logger.warning("--watch-folders has been deprecated and is ignored")

    options = DevOptions(
        root_path=root_path or Path.cwd(),
        port=port,
        command=sub_command,
        watch=not no_watch,
        no_sdk=no_sdk,
    )
    logger.info("Starting contentloom dev server")
    session = DevSession(options)
    try:
        asyncio.run(session.run())
    except ConfigurationError as exc:
        click.echo("Unable to start dev server, please fix your config and try again", err=True)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except ContentloomError as exc:
        click.echo(f"Error: {exc}", err=True)
        if verbose:
            logger.exception("contentloom dev failed")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


main.add_command(dev, "dev")
main.add_command(dev, "server:start")


@main.command()
@_ROOT_PATH
def init(*, root_path: Path | None) -> None:
    """Add contentloom to an existing project."""
    from contentloom.scaffold import init_project

    root = root_path or Path.cwd()
    result = init_project(root)
    for path in result.created:
        click.echo(f"  created {path.relative_to(root).as_posix()}")
    for path in result.skipped:
        click.echo(f"  exists  {path.relative_to(root).as_posix()}")
    click.echo("Run `contentloom dev` to start the dev server.")
