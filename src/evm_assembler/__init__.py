"""
EVM Assembler - Label Resolution Backend for EVM Bytecode
=========================================================

This package is the back half of a two-pass assembler for the Ethereum
Virtual Machine. It takes a program as a nested instruction tree, lays it
out linearly, picks a single width for every jump operand, and back-patches
label references into PUSH instructions.

Main Components
---------------
- **assembler**: tree builder, code generator and the Assembler facade
- **cli**: the `evmasm` command-line tool

Quick Start
-----------
    >>> from evm_assembler import Assembler
    >>> result = Assembler().assemble([
    ...     ["start", [1, "start", "jumpi"]],
    ... ])
    >>> result.code
    '0x5b6001600057'

Or from the command line:
    $ evmasm program.json -o program.hex
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from evm_assembler.assembler import Assembler, AssemblyResult, assemble
from evm_assembler.errors import (
    EvmAssemblerError,
    AssemblerError,
    TreeShapeError,
    UnknownOpcodeError,
    ConstantOverflowError,
    UnresolvedReferenceError,
    OperandRangeError,
)

__all__ = [
    "__version__",
    "Assembler",
    "AssemblyResult",
    "assemble",
    "EvmAssemblerError",
    "AssemblerError",
    "TreeShapeError",
    "UnknownOpcodeError",
    "ConstantOverflowError",
    "UnresolvedReferenceError",
    "OperandRangeError",
]
