"""Command line entry point for applying and checking patches."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .config import ConfigError, load_config
from .engine import apply_patch, validate_paths
from .errors import PatchError, is_invalid_patch, operational_error
from .models import HunkKind
from .parser import APPLY_PATCH_GRAMMAR, parse_patch

APP_HELP = "Apply '*** Begin Patch' documents to a directory tree."
EXIT_INVALID_PATCH = 1
EXIT_OPERATIONAL = 2

app = typer.Typer(help=APP_HELP)


def _read_patch(source: str) -> str:
    """Read patch text from a file path, or from stdin when ``source`` is ``-``."""
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as error:
        typer.echo(f"Unable to read patch file {path}: {error}")
        raise typer.Exit(code=EXIT_OPERATIONAL) from error


def _resolve_root(root: Optional[Path]) -> Path:
    return (root or Path.cwd()).absolute()


def _fail(error: PatchError) -> None:
    typer.echo(f"Error: {error}")
    code = EXIT_INVALID_PATCH if is_invalid_patch(error) else EXIT_OPERATIONAL
    raise typer.Exit(code=code) from error


@app.command()
def apply(
    patch_file: str = typer.Argument(..., help="Patch file to apply, or '-' to read stdin."),
    root: Optional[Path] = typer.Option(
        None,
        "--root",
        "-r",
        help="Sandbox root the patch is applied beneath (defaults to the current directory).",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML configuration file.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log telemetry events to stderr."),
) -> None:
    """Apply a patch and list the files it changed."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        settings = load_config(config)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=EXIT_OPERATIONAL) from error

    patch = _read_patch(patch_file)
    size = len(patch.encode("utf-8"))
    if settings.max_patch_bytes > 0 and size > settings.max_patch_bytes:
        _fail(operational_error(f"patch is {size} bytes, exceeding the limit of {settings.max_patch_bytes} bytes"))

    try:
        changes = apply_patch(_resolve_root(root), patch, telemetry=settings.telemetry)
    except PatchError as error:
        _fail(error)
        return

    for change in changes:
        typer.echo(change.render())


@app.command()
def check(
    patch_file: str = typer.Argument(..., help="Patch file to check, or '-' to read stdin."),
    root: Optional[Path] = typer.Option(
        None,
        "--root",
        "-r",
        help="Sandbox root used to validate paths (defaults to the current directory).",
    ),
) -> None:
    """Parse a patch and validate its paths without touching the filesystem."""
    patch = _read_patch(patch_file)
    try:
        document = parse_patch(patch)
        validate_paths(str(_resolve_root(root)), document)
    except PatchError as error:
        _fail(error)
        return

    typer.echo(f"Patch OK: {len(document.hunks)} hunk(s)")
    for hunk in document.hunks:
        if hunk.kind is HunkKind.UPDATE:
            target = f" -> {hunk.move_to}" if hunk.move_to else ""
            typer.echo(f"- update {hunk.path}{target} ({len(hunk.change_sets)} change set(s))")
        elif hunk.kind is HunkKind.ADD:
            typer.echo(f"- add {hunk.path} ({len(hunk.add_lines)} line(s))")
        else:
            typer.echo(f"- delete {hunk.path}")


@app.command()
def grammar() -> None:
    """Print the Lark grammar of the patch format."""
    typer.echo(APPLY_PATCH_GRAMMAR)


if __name__ == "__main__":
    app()
