"""
EVM Assembler Backend
=====================

This package turns a structured program description (a nested instruction
tree) into a flat byte stream for the Ethereum Virtual Machine, resolving
every label reference to an absolute offset.

Main Components
---------------
- **Assembler**: Main class that runs an assembly and packages the result
- **parse_tree / load_tree**: Build tagged nodes from the nested-list form
- **CodeGenerator**: Runs the five code generation stages
- **OPCODE_TABLE**: Mnemonic to encoding lookup

Assembly Process
----------------
1. **Tree building**: classify every element of the nested list as an
   opcode, literal, label use or label declaration
2. **Code generation**:
   - Linearize the tree into segments, leaving references open
   - Merge top-level code in as the initial segment
   - Resolve the jump operand width (2 or 3 bytes) for the whole program
   - Assign offsets to labels and data segments
   - Back-patch every reference and concatenate

Example Usage
-------------
>>> from evm_assembler.assembler import assemble
>>> assemble(["loop", ["loop", "jump"]])
'0x5b600056'
"""

from evm_assembler.assembler.assembler import (
    Assembler,
    AssemblyResult,
    assemble,
    assemble_file,
)
from evm_assembler.assembler.tree import (
    Node,
    Op,
    Literal,
    LabelUse,
    Block,
    CodeLabel,
    DataLabel,
    parse_tree,
    load_tree,
)
from evm_assembler.assembler.codegen import (
    CodeGenerator,
    DataAdvance,
    INITIAL_SEGMENT,
)
from evm_assembler.assembler.opcodes import (
    OPCODE_TABLE,
    JUMPDEST,
    PUSH_BASE,
    encode_push,
    get_opcode,
)

__all__ = [
    # Main class and functions
    "Assembler",
    "AssemblyResult",
    "assemble",
    "assemble_file",
    # Tree
    "Node",
    "Op",
    "Literal",
    "LabelUse",
    "Block",
    "CodeLabel",
    "DataLabel",
    "parse_tree",
    "load_tree",
    # Code generator
    "CodeGenerator",
    "DataAdvance",
    "INITIAL_SEGMENT",
    # Opcodes
    "OPCODE_TABLE",
    "JUMPDEST",
    "PUSH_BASE",
    "encode_push",
    "get_opcode",
]
