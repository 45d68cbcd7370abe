"""
EVM Assembler Error Hierarchy
=============================

This module defines the exception hierarchy for the assembler. All
exceptions inherit from EvmAssemblerError, allowing callers to catch every
assembler-related error with a single except clause if desired.

Exception Hierarchy
-------------------
EvmAssemblerError (base)
└── AssemblerError (assembly-related)
    ├── TreeShapeError - malformed instruction tree
    ├── UnknownOpcodeError - leaf is not a number, label or opcode
    ├── ConstantOverflowError - literal needs more than 32 bytes
    ├── UnresolvedReferenceError - reference to an undeclared label
    └── OperandRangeError - resolved offset does not fit its PUSH operand

Design Philosophy
-----------------
The instruction tree has no line/column information, so errors carry the
position of the offending node instead: a tuple of indices from the root
of the tree down to the node. Messages follow this format:

    error: opcode not found: 'jmup'
    at tree position [0, 1, 3]
    hint: did you mean 'jump'?
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class EvmAssemblerError(Exception):
    """
    Base exception for all EVM assembler errors.

    Callers can catch every error raised by the package with one clause:

        try:
            assemble(tree)
        except EvmAssemblerError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Assembler Exceptions
# =============================================================================

class AssemblerError(EvmAssemblerError):
    """
    Base exception for all assembly failures.

    Attributes:
        message: The error description
        path: Index path of the offending node in the tree (optional)
        hint: A suggestion for fixing the error (optional)
    """

    def __init__(
        self,
        message: str,
        path: Optional[tuple[int, ...]] = None,
        hint: Optional[str] = None,
    ):
        self.message = message
        self.path = path
        self.hint = hint
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with tree position and hint."""
        parts = [f"error: {self.message}"]

        if self.path is not None:
            position = ", ".join(str(i) for i in self.path)
            parts.append(f"at tree position [{position}]")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class TreeShapeError(AssemblerError):
    """
    The instruction tree is structurally invalid.

    Examples:
        - The root is not a list
        - A leaf is neither a string nor an integer
        - A literal is negative or not integral
        - A data label body is not exactly one hex string
        - A label is declared twice
    """
    pass


class UnknownOpcodeError(AssemblerError):
    """
    A leaf token is not a number, not a label and not a known opcode.

    Any identifier-shaped string that is not an opcode is read as a label,
    so this fires for tokens that cannot be label names (stray punctuation,
    embedded spaces) and for Op nodes built directly with a bad mnemonic.
    """

    def __init__(
        self,
        token: str,
        path: Optional[tuple[int, ...]] = None,
        hint: Optional[str] = None,
    ):
        self.token = token
        super().__init__(f"opcode not found: {token!r}", path=path, hint=hint)


class ConstantOverflowError(AssemblerError):
    """
    A numeric literal needs more than 32 bytes.

    PUSH32 is the widest immediate the VM offers, so anything larger
    cannot be encoded.
    """

    def __init__(self, value: int, path: Optional[tuple[int, ...]] = None):
        self.value = value
        super().__init__(
            f"constant integer overflow: {value}",
            path=path,
            hint="literals must fit in 32 bytes",
        )


class UnresolvedReferenceError(AssemblerError):
    """
    Reference to a label that was never declared.

    Raised while back-patching, when a placeholder names something absent
    from both the code-label and the bytes-label tables. Similar names are
    offered as a hint to help catch typos.
    """

    def __init__(
        self,
        name: str,
        path: Optional[tuple[int, ...]] = None,
        similar_symbols: Optional[list[str]] = None,
    ):
        self.name = name
        self.similar_symbols = similar_symbols or []

        hint = None
        if self.similar_symbols:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_symbols[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(f"unresolved reference '{name}'", path=path, hint=hint)


class OperandRangeError(AssemblerError):
    """
    A resolved value does not fit the immediate chosen for it.

    With a resolved width of 3 the PUSH immediate is two bytes, so any
    offset beyond 0xFFFF triggers this error.
    """

    def __init__(
        self,
        name: str,
        value: int,
        length: int,
        path: Optional[tuple[int, ...]] = None,
    ):
        self.name = name
        self.value = value
        self.length = length
        super().__init__(
            f"value {value} for '{name}' does not fit in {length} byte(s)",
            path=path,
            hint="program is too large for the available jump width",
        )
