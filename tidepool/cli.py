"""Command-line interface for Tidepool.

This module defines the CLI commands using Click framework.

Commands:
- new: Scaffold a new Tidepool site.
- build: Build the site into the destination directory, optionally watching for changes.
- serve: Run the development server with live reload.
- clean: Remove the generated _site directory.
- doctor: Check a site for common issues.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

import click

from . import __version__
from .build import DEFAULT_DESTINATION, BuildError, build_site
from .config import CONFIG_FILENAME, ConfigError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="tidepool")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """Tidepool static site generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


@cli.command()
@click.argument("name")
@click.option(
    "--path",
    "path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Where to create the site (defaults to ./NAME)",
)
def new(name: str, path: Path | None):
    """Scaffold a new Tidepool site."""
    from .scaffold import scaffold

    target = (path or Path(name)).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target}"
        )
    scaffold(target, title=name)
    click.echo(f"New Tidepool site created at {target}")
    click.echo("Next steps:")
    click.echo(f"  cd {target}")
    click.echo("  tidepool serve")


@cli.command()
@click.option(
    "-s",
    "--source",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Source directory",
)
@click.option(
    "-d",
    "--destination",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=f"Destination directory (defaults to SOURCE/{DEFAULT_DESTINATION})",
)
@click.option("--drafts", is_flag=True, help="Include draft posts")
@click.option("-w", "--watch", is_flag=True, help="Watch for changes and rebuild")
def build(source: Path, destination: Path | None, drafts: bool, watch: bool):
    """Build the site into the destination directory."""
    result = _run_build(source, destination, drafts)
    click.echo(
        f"Built {len(result.site.posts)} posts and {len(result.site.pages)} pages "
        f"into {result.destination}"
    )
    if not watch:
        return

    from .server import SiteWatcher

    watcher = SiteWatcher(source.resolve(), result.destination, include_drafts=drafts)
    watcher.start()
    click.echo("Watching for changes... (press Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        watcher.stop()


@cli.command()
@click.option(
    "-s",
    "--source",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Source directory",
)
@click.option("-p", "--port", type=int, default=4000, show_default=True, help="Port to serve on")
@click.option("--host", default="127.0.0.1", show_default=True, help="Host to bind to")
@click.option("-o", "--open", "open_browser", is_flag=True, help="Open the site in a browser")
@click.option("--drafts", is_flag=True, help="Include draft posts")
def serve(source: Path, port: int, host: str, open_browser: bool, drafts: bool):
    """Run dev server with live reload."""
    from .server import DevServer

    server = DevServer(source, host=host, port=port, include_drafts=drafts)
    try:
        server.start(open_browser=open_browser)
    except (BuildError, ConfigError) as exc:
        _fail(exc)


@cli.command()
@click.option(
    "-s",
    "--source",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Source directory",
)
def clean(source: Path):
    """Remove the generated _site directory."""
    site_dir = source / DEFAULT_DESTINATION
    if not site_dir.exists():
        click.echo(f"Nothing to clean - {site_dir} doesn't exist")
        return
    logger.info("Removing %s", site_dir)
    try:
        shutil.rmtree(site_dir)
    except OSError as exc:
        raise click.ClickException(f"Failed to remove {site_dir}: {exc}") from exc
    click.echo(f"Removed {site_dir}")


@cli.command()
@click.option(
    "-s",
    "--source",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Source directory",
)
def doctor(source: Path):
    """Check your site for common issues."""
    issues, warnings = _diagnose(source)
    for message in issues:
        click.echo(click.style(f"error: {message}", fg="red"))
    for message in warnings:
        click.echo(click.style(f"warning: {message}", fg="yellow"))
    if not issues and not warnings:
        click.echo(click.style("Your site looks good!", fg="green"))
    else:
        click.echo(f"{len(issues)} issue(s), {len(warnings)} warning(s)")


def _diagnose(source: Path) -> tuple[list[str], list[str]]:
    """Collect (issues, warnings) for a site directory."""
    issues: list[str] = []
    warnings: list[str] = []
    if not (source / CONFIG_FILENAME).exists():
        issues.append(f"Missing {CONFIG_FILENAME}")
    layouts = source / "_layouts"
    if not layouts.is_dir():
        warnings.append("Missing _layouts directory")
    elif not (layouts / "default.html").exists():
        warnings.append("No default.html layout found")
    if not (source / "_posts").is_dir():
        warnings.append("Missing _posts directory")
    if not any((source / name).exists() for name in ("index.md", "index.html", "index.markdown")):
        issues.append("No index file found (index.md, index.html, index.markdown)")
    if not (source / "assets").is_dir():
        warnings.append("No assets directory found")
    return issues, warnings


def _run_build(source: Path, destination: Path | None, drafts: bool):
    try:
        return build_site(source, destination, include_drafts=drafts)
    except (BuildError, ConfigError) as exc:
        _fail(exc)


def _fail(exc: BuildError | ConfigError) -> None:
    """Print a build or config error and exit with status 1."""
    if isinstance(exc, BuildError):
        location = exc.source_path
    else:
        location = exc.path
    try:
        location = location.relative_to(Path.cwd())
    except ValueError:
        pass
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {location}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
    raise SystemExit(1) from None


def main():
    """Entry point for the CLI application."""
    cli()
