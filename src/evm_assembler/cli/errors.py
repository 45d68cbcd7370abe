"""
Unified CLI Error Handling
==========================

Provides consistent error handling and exit codes for the command-line tool.

Input problems (bad JSON, a malformed tree) and failures while assembling a
well-formed tree are reported separately, each naming the source file, so
the user can tell a front-end bug from an assembly problem at a glance.
"""

import sys
import traceback
from enum import IntEnum
from pathlib import Path
from typing import NoReturn, Optional

import click


class ExitCode(IntEnum):
    """Standard exit codes for CLI tools."""
    SUCCESS = 0
    BUILD_ERROR = 1      # Assembly error
    INVALID_ARGS = 2     # Invalid arguments or missing files
    INTERNAL_ERROR = 3   # Unexpected internal error
    INVALID_INPUT = 4    # Input is not a well-formed instruction tree


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: str | None = None,
    source: Optional[Path] = None,
) -> NoReturn:
    """
    Unified exception handler for the CLI.

    Formats the error message, prints a traceback for internal errors in
    verbose mode, and exits with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors
        error_type: Optional prefix for the error message (e.g., "Assembly")
        source: Input file being processed, named in the message

    Raises:
        SystemExit: Always exits with an appropriate exit code
    """
    from evm_assembler.errors import EvmAssemblerError, TreeShapeError

    where = f" in {source}" if source is not None else ""

    if isinstance(error, TreeShapeError):
        # Errors already carry the "error:" prefix and tree position
        click.echo(f"Invalid instruction tree{where}:", err=True)
        click.echo(str(error), err=True)
        sys.exit(ExitCode.INVALID_INPUT)

    elif isinstance(error, EvmAssemblerError):
        label = error_type or "Build"
        click.echo(f"{label} failed{where}:", err=True)
        click.echo(str(error), err=True)
        sys.exit(ExitCode.BUILD_ERROR)

    elif isinstance(error, click.BadParameter):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, (FileNotFoundError, PermissionError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        # Unexpected internal error
        click.echo(f"Internal error{where}: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
