"""
evmasm - EVM Assembler Command-Line Interface
=============================================

This module implements the command-line interface for the assembler. The
input is an instruction tree stored as JSON; the output is the assembled
bytecode as a 0x-prefixed hex string.

Usage Examples
--------------
Print the bytecode:
    $ evmasm program.json

Write hex and raw binary files:
    $ evmasm program.json -o program.hex -b program.bin

Verbose mode (width, size and label offsets):
    $ evmasm -v program.json
"""

from pathlib import Path
from typing import Optional
import logging

import click

from evm_assembler import __version__
from evm_assembler.assembler import Assembler, DataAdvance
from evm_assembler.assembler.codegen import DEFAULT_WIDTH_THRESHOLD
from evm_assembler.cli.errors import handle_cli_exception


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write hex output to this file instead of stdout",
)
@click.option(
    "-b", "--binary",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write the raw bytecode to this file",
)
@click.option(
    "--legacy-data-offsets",
    is_flag=True,
    help="Advance offsets past a data segment by its size encoding only, "
         "not by its payload (older layout).",
)
@click.option(
    "--threshold",
    type=click.IntRange(min=1),
    default=DEFAULT_WIDTH_THRESHOLD,
    show_default=True,
    help="Largest minimum program size that keeps 2-byte jump operands",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="evmasm")
def main(
    input_file: Path,
    output: Optional[Path],
    binary: Optional[Path],
    legacy_data_offsets: bool,
    threshold: int,
    verbose: bool,
) -> None:
    """
    Assemble an EVM instruction tree.

    INPUT_FILE is a JSON file holding the nested instruction tree.

    \b
    Examples:
        evmasm program.json                  # Print hex to stdout
        evmasm program.json -o program.hex   # Write hex to a file
        evmasm program.json -b program.bin   # Also write raw bytes
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s: %(message)s")

    data_advance = DataAdvance.SIZE_PREFIX if legacy_data_offsets else DataAdvance.PAYLOAD
    asm = Assembler(
        data_advance=data_advance,
        width_threshold=threshold,
        verbose=verbose,
    )

    try:
        if verbose:
            click.echo(f"Assembling {input_file}...", err=True)

        result = asm.assemble_file(input_file)

        if output is not None:
            result.write_hex(output)
            if verbose:
                click.echo(f"Wrote {result.size} bytes as hex to {output}", err=True)
        else:
            click.echo(result.code)

        if binary is not None:
            result.write_binary(binary)
            if verbose:
                click.echo(f"Wrote {result.size} bytes to {binary}", err=True)

        if verbose:
            click.echo(f"Jump width: {result.width} bytes", err=True)
            for name in result.segment_order:
                if name in result.jumpdests:
                    click.echo(f"  {result.jumpdests[name]:6d}  {name}", err=True)
                else:
                    click.echo(f"  {result.pointers[name]:6d}  {name} (data)", err=True)

    except Exception as e:
        handle_cli_exception(e, verbose=verbose, error_type="Assembly", source=input_file)


if __name__ == "__main__":
    main()
