"""
Instruction Tree
================

This module turns the nested-list program description produced by the
front end into a tree of explicitly tagged nodes that the code generator
can walk without guessing what each element means.

Raw Form
--------
The raw form is an arbitrarily nested list (usually loaded from JSON)
whose leaves are mnemonics, numbers or label names:

```json
[
  ["main", [1, "loop", "jump"]],
  ["loop", ["caller", "bytes:greeting:ptr", "bytes:greeting:size", "return"]],
  ["bytes:greeting", ["0x68656c6c6f"]]
]
```

Node Types
----------
1. **Op**: an instruction mnemonic (`"caller"`, `"jump"`)
2. **Literal**: a number; ints, decimal strings and `0x` hex strings
3. **LabelUse**: a reference to a label, assembled as a PUSH of its offset
4. **Block**: a nested list of nodes
5. **CodeLabel**: a named instruction block
6. **DataLabel**: a named raw payload (name starts with `bytes:`)

Label Declarations
------------------
Declarations have no syntax of their own. A label identifier is a
declaration when it is the first element of its list and the element right
after it is itself a list; that list is the label's body. Any other label
identifier is a use. A data label's body holds exactly one hex string.

Every node keeps `path`, the index path from the root, for error reports.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union
import json
import re

from evm_assembler.errors import TreeShapeError
from evm_assembler.assembler.hexutil import coerce_to_int, is_numeric, strip_hex_prefix
from evm_assembler.assembler.opcodes import is_opcode


# Prefix that marks a label declaration as a raw data segment
BYTES_LABEL_PREFIX = "bytes:"

# Suffixes of the two placeholders derived from every data label
PTR_SUFFIX = ":ptr"
SIZE_SUFFIX = ":size"

# Strings that can name a label
LABEL_PATTERN = re.compile(r"^[A-Za-z_.$@][\w.$@:-]*$")


# =============================================================================
# Nodes
# =============================================================================

@dataclass(frozen=True)
class Node:
    """Base class for tree nodes."""
    path: tuple[int, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class Op(Node):
    """Instruction mnemonic."""
    mnemonic: str = ""


@dataclass(frozen=True)
class Literal(Node):
    """Numeric literal, assembled as the narrowest PUSH that holds it."""
    value: int = 0


@dataclass(frozen=True)
class LabelUse(Node):
    """Reference to a code label or to a data label's :ptr / :size."""
    name: str = ""


@dataclass(frozen=True)
class Block(Node):
    """Grouped sequence of nodes."""
    children: tuple[Node, ...] = ()


@dataclass(frozen=True)
class CodeLabel(Node):
    """
    Named instruction block.

    Attributes:
        name: Label name
        body: Instructions following the jump-destination marker
    """
    name: str = ""
    body: Block = field(default_factory=Block)


@dataclass(frozen=True)
class DataLabel(Node):
    """
    Named raw data segment.

    Attributes:
        name: Label name, including the bytes: prefix
        payload: Hex payload without 0x prefix, as written
    """
    name: str = ""
    payload: str = ""


# =============================================================================
# Classification Helpers
# =============================================================================

def is_bytes_label(name: str) -> bool:
    """Return True if the name declares or refers to a data segment."""
    return name.startswith(BYTES_LABEL_PREFIX)


def is_label(token: object) -> bool:
    """
    Return True if a leaf is a label identifier.

    A label identifier is a string that is not a number, not an opcode and
    looks like a name.
    """
    return (
        isinstance(token, str)
        and not is_numeric(token)
        and not is_opcode(token)
        and LABEL_PATTERN.match(token) is not None
    )


def ptr_key(label: str) -> str:
    """Placeholder name that resolves to a data segment's offset."""
    return label + PTR_SUFFIX


def size_key(label: str) -> str:
    """Placeholder name that resolves to a data segment's byte length."""
    return label + SIZE_SUFFIX


# =============================================================================
# Raw Tree Conversion
# =============================================================================

def parse_tree(raw: list) -> Block:
    """
    Convert a raw nested-list program into tagged nodes.

    Args:
        raw: The nested list produced by the front end

    Returns:
        Block holding the whole program

    Raises:
        TreeShapeError: If the structure is invalid
    """
    if not isinstance(raw, list):
        raise TreeShapeError(
            f"instruction tree must be a list, got {type(raw).__name__}",
            path=(),
        )
    return _parse_scope(raw, ())


def _parse_scope(items: list, path: tuple[int, ...]) -> Block:
    children: list[Node] = []
    i = 0
    while i < len(items):
        item = items[i]
        item_path = path + (i,)

        if (i == 0 and is_label(item)
                and i + 1 < len(items) and isinstance(items[i + 1], list)):
            body_path = path + (1,)
            if is_bytes_label(item):
                children.append(DataLabel(
                    path=item_path,
                    name=item,
                    payload=_parse_payload(items[1], body_path),
                ))
            else:
                children.append(CodeLabel(
                    path=item_path,
                    name=item,
                    body=_parse_scope(items[1], body_path),
                ))
            i += 2
            continue

        children.append(_parse_leaf(item, item_path))
        i += 1

    return Block(path=path, children=tuple(children))


def _parse_leaf(item: object, path: tuple[int, ...]) -> Node:
    if isinstance(item, list):
        return _parse_scope(item, path)

    if isinstance(item, bool) or not isinstance(item, (int, str)):
        raise TreeShapeError(
            f"unsupported leaf {item!r} of type {type(item).__name__}",
            path=path,
        )

    if is_label(item):
        return LabelUse(path=path, name=item)

    if is_numeric(item):
        value = coerce_to_int(item)
        if value < 0:
            raise TreeShapeError(f"negative literal: {item!r}", path=path)
        return Literal(path=path, value=value)

    return Op(path=path, mnemonic=str(item))


def _parse_payload(body: list, path: tuple[int, ...]) -> str:
    if len(body) != 1 or not isinstance(body[0], str):
        raise TreeShapeError(
            "data label body must hold exactly one hex string",
            path=path,
            hint='write it as ["bytes:name", ["0x..."]]',
        )
    payload = body[0]
    text = strip_hex_prefix(payload)
    if text and re.fullmatch(r"[0-9a-fA-F]+", text) is None:
        raise TreeShapeError(f"invalid hex payload: {payload!r}", path=path + (0,))
    return text.lower()


def load_tree(source: Union[str, Path]) -> Block:
    """
    Load and parse a JSON instruction tree.

    Args:
        source: A Path to a JSON file, or a string holding the JSON text

    Returns:
        Parsed Block

    Raises:
        TreeShapeError: If the JSON is invalid or the tree malformed
        FileNotFoundError: If a path is given and does not exist
    """
    if isinstance(source, Path):
        text = source.read_text(encoding="utf-8")
    else:
        text = source
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise TreeShapeError(f"invalid JSON: {e}") from e
    return parse_tree(raw)
