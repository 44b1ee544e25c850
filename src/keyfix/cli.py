"""Command line entry point: key positional record constructor calls."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

import typer

from .driver import FixResult, fix_path, fix_source
from .errors import KeyfixError, ParseError, UsageError
from .options import RunOptions
from .unit import STDIN_DISPLAY_NAME

APP_HELP = """keyfix adds field names to positional record constructor calls.

Dataclass and named tuple calls such as Point(1, 2) become Point(x=1, y=2).
With no paths, source is read from standard input and the patched text is
written to standard output.
"""

app = typer.Typer(help=APP_HELP, add_completion=False)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _fail(messages: List[str], code: int = 1) -> NoReturn:
    for message in messages:
        typer.echo(message, err=True)
    raise typer.Exit(code=code)


def _emit(result: FixResult, options: RunOptions, label: str, path: Optional[Path] = None) -> None:
    """Report one input according to the output switches."""
    if result.changed and options.list_only:
        typer.echo(label)
    if options.write and path is not None and result.changed and result.output is not None:
        path.write_bytes(result.output)
    if options.diff:
        text = result.diff(label)
        if text:
            typer.echo(text, nl=False)
    elif not options.list_only and not options.write and result.output is not None:
        stream = typer.get_binary_stream("stdout")
        stream.write(result.output)
        stream.flush()


@app.command()
def main(
    paths: Optional[List[Path]] = typer.Argument(
        None,
        help="Python files to fix. Reads standard input when omitted.",
        show_default=False,
    ),
    write: bool = typer.Option(
        False,
        "--write",
        "-w",
        help="Write the result back to each file instead of standard output.",
    ),
    list_only: bool = typer.Option(
        False,
        "--list",
        "-l",
        help="List inputs that need keying instead of printing source.",
    ),
    diff: bool = typer.Option(
        False,
        "--diff",
        "-d",
        help="Print a unified diff instead of the patched source.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log resolution and classification details to standard error.",
    ),
) -> None:
    """Key positional constructor calls of dataclasses and named tuples."""
    _configure_logging(verbose)
    try:
        options = RunOptions.build(write=write, list_only=list_only, diff=diff, paths=list(paths or []))
    except UsageError as error:
        _fail([str(error)], code=2)

    try:
        if options.reads_stdin:
            data = typer.get_binary_stream("stdin").read()
            result = fix_source(data, emit=options.emit)
            _emit(result, options, STDIN_DISPLAY_NAME)
            return
        for path in options.paths:
            result = fix_path(path, emit=options.emit)
            _emit(result, options, str(path), path)
    except ParseError as error:
        _fail(list(error.errors) or [str(error)])
    except (KeyfixError, OSError) as error:
        _fail([str(error)])


if __name__ == "__main__":
    app()
