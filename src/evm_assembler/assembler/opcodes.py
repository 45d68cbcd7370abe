"""
EVM Instruction Set Definition
==============================

This module defines the opcode table used by the code generator: a mapping
from lower-case mnemonic to the instruction's single-byte encoding, written
as two hex digits.

Two entries are special:

- **push**: the base of the PUSH-N family. PUSH-N for an immediate of
  `length` bytes is encoded as `push + (length - 1)`, so PUSH1 is $60 and
  PUSH32 is $7F. Used on its own, `push` assembles to a bare $60.
- **jumpdest**: the jump-destination marker ($5B). The VM only accepts
  jumps that land on this byte, so every code label starts with it.

Mnemonic lookups are case-insensitive.

Reference
---------
- Ethereum Yellow Paper, Appendix H (Virtual Machine Specification)
- https://www.evm.codes/
"""

from typing import Optional

from evm_assembler.errors import OperandRangeError
from evm_assembler.assembler.hexutil import byte_length, left_zero_pad_to_byte_length


# =============================================================================
# Opcode Table
# =============================================================================

OPCODE_TABLE: dict[str, str] = {
    # Stop and arithmetic
    "stop": "00",
    "add": "01",
    "mul": "02",
    "sub": "03",
    "div": "04",
    "sdiv": "05",
    "mod": "06",
    "smod": "07",
    "addmod": "08",
    "mulmod": "09",
    "exp": "0a",
    "signextend": "0b",
    # Comparison and bitwise logic
    "lt": "10",
    "gt": "11",
    "slt": "12",
    "sgt": "13",
    "eq": "14",
    "iszero": "15",
    "and": "16",
    "or": "17",
    "xor": "18",
    "not": "19",
    "byte": "1a",
    "shl": "1b",
    "shr": "1c",
    "sar": "1d",
    # Hashing
    "sha3": "20",
    "keccak256": "20",
    # Environment
    "address": "30",
    "balance": "31",
    "origin": "32",
    "caller": "33",
    "callvalue": "34",
    "calldataload": "35",
    "calldatasize": "36",
    "calldatacopy": "37",
    "codesize": "38",
    "codecopy": "39",
    "gasprice": "3a",
    "extcodesize": "3b",
    "extcodecopy": "3c",
    "returndatasize": "3d",
    "returndatacopy": "3e",
    "extcodehash": "3f",
    # Block information
    "blockhash": "40",
    "coinbase": "41",
    "timestamp": "42",
    "number": "43",
    "difficulty": "44",
    "prevrandao": "44",
    "gaslimit": "45",
    "chainid": "46",
    "selfbalance": "47",
    "basefee": "48",
    "blobhash": "49",
    "blobbasefee": "4a",
    # Stack, memory, storage and flow
    "pop": "50",
    "mload": "51",
    "mstore": "52",
    "mstore8": "53",
    "sload": "54",
    "sstore": "55",
    "jump": "56",
    "jumpi": "57",
    "pc": "58",
    "msize": "59",
    "gas": "5a",
    "jumpdest": "5b",
    "tload": "5c",
    "tstore": "5d",
    "mcopy": "5e",
    "push0": "5f",
    "push": "60",
    # System
    "create": "f0",
    "call": "f1",
    "callcode": "f2",
    "return": "f3",
    "delegatecall": "f4",
    "create2": "f5",
    "staticcall": "fa",
    "revert": "fd",
    "invalid": "fe",
    "selfdestruct": "ff",
}

# Numbered families: PUSH1-32, DUP1-16, SWAP1-16, LOG0-4
OPCODE_TABLE.update({f"push{n}": f"{0x5F + n:02x}" for n in range(1, 33)})
OPCODE_TABLE.update({f"dup{n}": f"{0x7F + n:02x}" for n in range(1, 17)})
OPCODE_TABLE.update({f"swap{n}": f"{0x8F + n:02x}" for n in range(1, 17)})
OPCODE_TABLE.update({f"log{n}": f"{0xA0 + n:02x}" for n in range(0, 5)})

PUSH_BASE = OPCODE_TABLE["push"]
JUMPDEST = OPCODE_TABLE["jumpdest"]

# Widest immediate a PUSH can carry
MAX_PUSH_BYTES = 32


# =============================================================================
# Lookup Functions
# =============================================================================

def get_opcode(mnemonic: str) -> Optional[str]:
    """
    Look up the encoding for a mnemonic.

    Args:
        mnemonic: Instruction name, any case

    Returns:
        Two hex digits, or None if the mnemonic is unknown
    """
    return OPCODE_TABLE.get(mnemonic.lower())


def is_opcode(token: object) -> bool:
    """Return True if the token is a string naming a known instruction."""
    return isinstance(token, str) and token.lower() in OPCODE_TABLE


def encode_push(
    value: int,
    length: int,
    name: str = "<constant>",
    path: Optional[tuple[int, ...]] = None,
) -> str:
    """
    Encode a PUSH-N instruction with its immediate operand.

    Args:
        value: Non-negative value to push
        length: Immediate size in bytes (1-32)
        name: What the value stands for, used in error messages
        path: Tree position of the reference, used in error messages

    Returns:
        Hex string: the PUSH-length opcode followed by `length` bytes

    Raises:
        OperandRangeError: If the value needs more than `length` bytes
    """
    if not 1 <= length <= MAX_PUSH_BYTES:
        raise ValueError(f"PUSH immediate length must be 1-32, got {length}")
    if byte_length(value) > length:
        raise OperandRangeError(name, value, length, path=path)

    opcode = int(PUSH_BASE, 16) + length - 1
    return f"{opcode:02x}" + left_zero_pad_to_byte_length(f"{value:x}", length)
