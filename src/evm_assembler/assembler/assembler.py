"""
EVM Assembler - Main Interface
==============================

This module provides the Assembler class, the primary interface for
turning an instruction tree into EVM bytecode. It coordinates the tree
builder and the code generator and packages what they produce.

Example Usage
-------------
>>> from evm_assembler.assembler import Assembler
>>>
>>> asm = Assembler()
>>> result = asm.assemble([
...     ["main", [1, "main", "jumpi", "stop"]],
... ])
>>> result.code
'0x5b600160005700'
>>> result.jumpdests["main"]
0
>>>
>>> result.write_binary("main.bin")

Command-Line Usage
------------------
    $ evmasm program.json -o program.hex

Options:
    -o, --output FILE        Write hex output to FILE
    -b, --binary FILE        Write raw bytes to FILE
    --legacy-data-offsets    Advance offsets past data segments by their
                             size encoding only
    --threshold N            Largest minimum size that keeps 2-byte jumps
    -v, --verbose            Verbose output
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union
import logging

from evm_assembler.assembler.codegen import (
    DEFAULT_WIDTH_THRESHOLD,
    INITIAL_SEGMENT,
    CodeGenerator,
    DataAdvance,
)
from evm_assembler.assembler.hexutil import strip_hex_prefix
from evm_assembler.assembler.tree import Block, load_tree, parse_tree

logger = logging.getLogger(__name__)


# =============================================================================
# Assembly Result
# =============================================================================

@dataclass(frozen=True)
class AssemblyResult:
    """
    Output of one assembly.

    Attributes:
        code: The byte stream as 0x-prefixed hex
        width: Resolved jump operand width (2 or 3)
        jumpdests: Code label -> offset of its JUMPDEST
        pointers: Data label -> offset of its segment
        segment_order: Labels in output order (initial segment omitted)
    """
    code: str
    width: int
    jumpdests: dict[str, int]
    pointers: dict[str, int]
    segment_order: tuple[str, ...]

    @property
    def size(self) -> int:
        """Length of the byte stream."""
        return len(strip_hex_prefix(self.code)) // 2

    def to_bytes(self) -> bytes:
        """Return the byte stream as bytes."""
        return bytes.fromhex(strip_hex_prefix(self.code))

    def write_hex(self, path: Union[str, Path]) -> None:
        """Write the hex string, newline-terminated."""
        Path(path).write_text(self.code + "\n", encoding="utf-8")

    def write_binary(self, path: Union[str, Path]) -> None:
        """Write the raw bytes."""
        Path(path).write_bytes(self.to_bytes())


# =============================================================================
# Assembler
# =============================================================================

class Assembler:
    """
    Main EVM assembler class.

    Each call to assemble() builds fresh state, so one instance can
    assemble any number of programs, in any order.

    Attributes:
        data_advance: How data segments move the offset cursor
        width_threshold: Largest minimum size that keeps 2-byte jumps
        verbose: If True, log a summary of each assembly at INFO level
    """

    def __init__(
        self,
        data_advance: DataAdvance = DataAdvance.PAYLOAD,
        width_threshold: int = DEFAULT_WIDTH_THRESHOLD,
        verbose: bool = False,
    ):
        """
        Initialize the assembler.

        Args:
            data_advance: PAYLOAD (default) places the segment after a data
                          label right after its payload. SIZE_PREFIX keeps
                          the legacy layout that only skips the size
                          encoding.
            width_threshold: Minimum program size up to which jump operands
                             stay at 2 bytes
            verbose: Log a summary after each assembly
        """
        self.data_advance = data_advance
        self.width_threshold = width_threshold
        self.verbose = verbose

    def assemble(self, tree: Union[list, Block]) -> AssemblyResult:
        """
        Assemble an instruction tree.

        Args:
            tree: Raw nested list, or an already parsed Block

        Returns:
            AssemblyResult

        Raises:
            AssemblerError: If the tree cannot be assembled
        """
        if not isinstance(tree, Block):
            tree = parse_tree(tree)

        generator = CodeGenerator(
            data_advance=self.data_advance,
            width_threshold=self.width_threshold,
        )
        generated = generator.generate(tree)
        layout = generated.layout

        result = AssemblyResult(
            code=generated.code,
            width=layout.width,
            jumpdests={
                k: v for k, v in layout.jumpdests.items() if k is not INITIAL_SEGMENT
            },
            pointers=dict(layout.pointers),
            segment_order=tuple(
                k for k in generated.program.segment_order if k is not INITIAL_SEGMENT
            ),
        )

        if self.verbose:
            logger.info(
                f"Assembled {result.size} bytes, jump width {result.width}, "
                f"{len(result.jumpdests)} labels, {len(result.pointers)} data segments"
            )
        return result

    def assemble_json(self, text: str) -> AssemblyResult:
        """Assemble a tree given as JSON text."""
        return self.assemble(load_tree(text))

    def assemble_file(self, path: Union[str, Path]) -> AssemblyResult:
        """
        Assemble a JSON tree file.

        Raises:
            FileNotFoundError: If the file does not exist
            AssemblerError: If the tree cannot be assembled
        """
        path = Path(path)
        logger.debug(f"Assembling {path}")
        return self.assemble(load_tree(path))


# =============================================================================
# Convenience Functions
# =============================================================================

def assemble(tree: Union[list, Block], **options) -> str:
    """
    Assemble a tree and return the 0x-prefixed hex string.

    Keyword arguments are passed to Assembler.
    """
    return Assembler(**options).assemble(tree).code


def assemble_file(path: Union[str, Path], **options) -> AssemblyResult:
    """Assemble a JSON tree file with a fresh Assembler."""
    return Assembler(**options).assemble_file(path)
