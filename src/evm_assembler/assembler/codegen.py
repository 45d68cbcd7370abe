"""
EVM Code Generator
==================

This module turns a parsed instruction tree into a flat, linearly addressed
byte stream. Jump targets are PUSHed as absolute offsets, so the encoding
of every label reference depends on where the label lands, and where it
lands depends on how wide the references before it are. The generator
breaks that cycle in five stages:

1. **Linearize**: walk the tree and build ordered segments of pieces. A
   piece is either concrete hex or a reference left open for later.
2. **Merge**: fold the unlabeled top-level code into the segment table as
   the initial segment, so every later stage treats all code alike.
3. **Resolve width**: decide, once for the whole program, whether jump
   operands take 2 or 3 bytes (PUSH1 or PUSH2 plus opcode).
4. **Annotate offsets**: walk segments in order, recording where each code
   label and data segment starts.
5. **Back-patch and serialize**: replace every reference with its PUSH
   encoding and concatenate the segments.

Width Decision
--------------
The program is measured with every label or pointer reference at its
cheapest (2 bytes). If that lower bound fits in 256 bytes, PUSH1 can reach
every offset and the width is 2; otherwise it is 3. An empty data segment
at the very end starts at the lower bound itself, so such a program needs
the lower bound to stay below 256. Going from 2 to 3 only grows the
program, so the decision never has to be revisited.

Data Segments
-------------
A data label (`bytes:name`) contributes its raw payload to the output and
two placeholders to the code: `bytes:name:ptr` (PUSH of the segment's
offset) and `bytes:name:size` (PUSH of the payload length, in the fewest
bytes that hold it). How far a data segment moves the offset cursor is
selected by DataAdvance: PAYLOAD advances by the bytes actually emitted,
SIZE_PREFIX reproduces the older rule of advancing by the size encoding
only.

Each stage takes the previous stage's value and returns a new one. Nothing
is shared between assemblies.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Union
import difflib
import logging

from evm_assembler.errors import (
    ConstantOverflowError,
    TreeShapeError,
    UnknownOpcodeError,
    UnresolvedReferenceError,
)
from evm_assembler.assembler.hexutil import (
    add_hex_prefix,
    byte_length,
    left_zero_pad_to_byte_length,
)
from evm_assembler.assembler.opcodes import (
    JUMPDEST,
    MAX_PUSH_BYTES,
    OPCODE_TABLE,
    encode_push,
    get_opcode,
)
from evm_assembler.assembler.tree import (
    Block,
    CodeLabel,
    DataLabel,
    LabelUse,
    Literal,
    Node,
    Op,
    ptr_key,
    size_key,
)

# Logger for this module
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Largest minimum program size that still allows 2-byte jump operands
DEFAULT_WIDTH_THRESHOLD = 256

NARROW_WIDTH = 2
WIDE_WIDTH = 3

# Cheapest possible encoding of a label or pointer reference (PUSH1 xx)
MIN_REFERENCE_SIZE = 2


class InitialSegment(Enum):
    """Key of the segment holding unlabeled top-level code."""
    INITIAL = "<initial>"

    def __repr__(self) -> str:
        return "INITIAL_SEGMENT"


INITIAL_SEGMENT = InitialSegment.INITIAL

SegmentKey = Union[str, InitialSegment]


class DataAdvance(Enum):
    """How far a data segment moves the offset cursor."""
    PAYLOAD = "payload"          # by the payload bytes emitted
    SIZE_PREFIX = "size-prefix"  # by size-of-length + 1 (legacy layout)


class RefKind(Enum):
    """What a reference piece resolves to."""
    LABEL = auto()    # jump-destination offset of a code label
    POINTER = auto()  # start offset of a data segment
    SIZE = auto()     # byte length of a data segment's payload


# =============================================================================
# Intermediate Representation
# =============================================================================

@dataclass(frozen=True)
class HexPiece:
    """Concrete encoded bytes, as hex without prefix."""
    hex: str

    @property
    def size(self) -> int:
        return len(self.hex) // 2


@dataclass(frozen=True)
class RefPiece:
    """
    Placeholder for a PUSH whose operand is only known after layout.

    Attributes:
        name: Code label, or data label with :ptr / :size suffix
        path: Tree position of the use, for error reporting
    """
    name: str
    path: tuple[int, ...] = field(default=(), compare=False)


Piece = Union[HexPiece, RefPiece]


@dataclass(frozen=True)
class BytesSegment:
    """
    Raw payload of a data label.

    Attributes:
        payload: Hex payload, left-padded to a whole number of bytes
        length: Payload size in bytes
        size_of_length: Bytes needed to PUSH `length` (at least 1)
    """
    payload: str
    length: int
    size_of_length: int


@dataclass(frozen=True)
class Linearized:
    """Output of the linearizer: labeled segments plus top-level code."""
    labels: dict[str, tuple[Piece, ...]]
    bytes_labels: dict[str, BytesSegment]
    segment_order: tuple[str, ...]
    initial: tuple[Piece, ...]


@dataclass(frozen=True)
class Program:
    """
    All segments in one table, keyed by label or INITIAL_SEGMENT.

    Attributes:
        labels: Code segments (INITIAL_SEGMENT included)
        bytes_labels: Data segments
        segment_order: Output order, INITIAL_SEGMENT first
        pointer_keys: "bytes:x:ptr" -> "bytes:x"
        size_keys: "bytes:x:size" -> "bytes:x"
    """
    labels: dict[SegmentKey, tuple[Piece, ...]]
    bytes_labels: dict[str, BytesSegment]
    segment_order: tuple[SegmentKey, ...]
    pointer_keys: dict[str, str]
    size_keys: dict[str, str]

    def classify(self, name: str) -> Optional[RefKind]:
        """Return what a reference name resolves to, or None if nothing."""
        if name in self.labels:
            return RefKind.LABEL
        if name in self.pointer_keys:
            return RefKind.POINTER
        if name in self.size_keys:
            return RefKind.SIZE
        return None

    def known_names(self) -> list[str]:
        """Every name a reference may legally use."""
        names = [k for k in self.labels if isinstance(k, str)]
        names.extend(self.pointer_keys)
        names.extend(self.size_keys)
        return names


@dataclass(frozen=True)
class Layout:
    """
    Offsets assigned by the annotator.

    Attributes:
        width: Resolved jump operand width (2 or 3)
        jumpdests: Code segment -> offset of its first byte
        pointers: Data label -> offset of its segment
        size: Cursor position after the last segment
    """
    width: int
    jumpdests: dict[SegmentKey, int]
    pointers: dict[str, int]
    size: int


# =============================================================================
# Stage 1: Linearizer
# =============================================================================

class _Linearizer:
    """Builds segments for one tree. Used once, then discarded."""

    def __init__(self):
        # Hex runs are kept as fragment lists and joined once in run()
        self._labels: dict[str, list[Union[list[str], RefPiece]]] = {}
        self._bytes_labels: dict[str, BytesSegment] = {}
        self._order: list[str] = []
        self._initial: list[Union[list[str], RefPiece]] = []
        self._current: Optional[str] = None

    def run(self, tree: Block) -> Linearized:
        self._walk(tree)
        return Linearized(
            labels={k: self._freeze(v) for k, v in self._labels.items()},
            bytes_labels=dict(self._bytes_labels),
            segment_order=tuple(self._order),
            initial=self._freeze(self._initial),
        )

    @staticmethod
    def _freeze(pieces: list[Union[list[str], RefPiece]]) -> tuple[Piece, ...]:
        return tuple(
            piece if isinstance(piece, RefPiece) else HexPiece("".join(piece))
            for piece in pieces
        )

    def _pieces(self) -> list[Union[list[str], RefPiece]]:
        if self._current is None:
            return self._initial
        return self._labels[self._current]

    def _push_bytes(self, hex_bytes: str) -> None:
        pieces = self._pieces()
        if pieces and isinstance(pieces[-1], list):
            pieces[-1].append(hex_bytes)
        else:
            pieces.append([hex_bytes])

    def _walk(self, node: Node) -> None:
        if isinstance(node, Block):
            for child in node.children:
                self._walk(child)
        elif isinstance(node, CodeLabel):
            self._open_code_label(node)
        elif isinstance(node, DataLabel):
            self._add_data_label(node)
        elif isinstance(node, LabelUse):
            self._pieces().append(RefPiece(node.name, path=node.path))
        elif isinstance(node, Literal):
            self._push_literal(node)
        elif isinstance(node, Op):
            self._push_op(node)
        else:
            raise TreeShapeError(f"unexpected node {node!r}", path=node.path)

    def _open_code_label(self, node: CodeLabel) -> None:
        if node.name in self._labels:
            raise TreeShapeError(f"duplicate label '{node.name}'", path=node.path)
        self._labels[node.name] = [[JUMPDEST]]
        self._order.append(node.name)
        # Stays current after the body: later siblings belong to it too
        self._current = node.name
        logger.debug(f"Opened code label '{node.name}'")
        self._walk(node.body)

    def _add_data_label(self, node: DataLabel) -> None:
        if node.name in self._bytes_labels:
            raise TreeShapeError(f"duplicate data label '{node.name}'", path=node.path)
        length = (len(node.payload) + 1) // 2
        segment = BytesSegment(
            payload=left_zero_pad_to_byte_length(node.payload, length),
            length=length,
            size_of_length=byte_length(length) or 1,
        )
        self._bytes_labels[node.name] = segment
        self._order.append(node.name)
        logger.debug(f"Registered data label '{node.name}' ({length} bytes)")

    def _push_literal(self, node: Literal) -> None:
        length = byte_length(node.value) or 1
        if length > MAX_PUSH_BYTES:
            raise ConstantOverflowError(node.value, path=node.path)
        self._push_bytes(encode_push(node.value, length))

    def _push_op(self, node: Op) -> None:
        op = get_opcode(node.mnemonic)
        if op is None:
            similar = difflib.get_close_matches(node.mnemonic.lower(), OPCODE_TABLE, n=3)
            hint = None
            if similar:
                hint = "did you mean " + ", ".join(f"'{s}'" for s in similar) + "?"
            raise UnknownOpcodeError(node.mnemonic, path=node.path, hint=hint)
        self._push_bytes(op)


def linearize(tree: Block) -> Linearized:
    """
    Walk the tree and build the segment table.

    Args:
        tree: Parsed program

    Returns:
        Labeled segments, data segments, declaration order and the
        top-level pieces

    Raises:
        UnknownOpcodeError: For an unknown mnemonic
        ConstantOverflowError: For a literal wider than 32 bytes
        TreeShapeError: For a label declared twice
    """
    return _Linearizer().run(tree)


# =============================================================================
# Stage 2: Segment Merger
# =============================================================================

def merge_initial(linearized: Linearized) -> Program:
    """Fold top-level code in as INITIAL_SEGMENT, placed first."""
    labels: dict[SegmentKey, tuple[Piece, ...]] = {INITIAL_SEGMENT: linearized.initial}
    labels.update(linearized.labels)

    pointer_keys = {ptr_key(name): name for name in linearized.bytes_labels}
    size_keys = {size_key(name): name for name in linearized.bytes_labels}

    program = Program(
        labels=labels,
        bytes_labels=dict(linearized.bytes_labels),
        segment_order=(INITIAL_SEGMENT,) + linearized.segment_order,
        pointer_keys=pointer_keys,
        size_keys=size_keys,
    )
    logger.debug(f"Merged program: {len(program.segment_order)} segments")
    return program


# =============================================================================
# Stage 3: Width Resolver
# =============================================================================

def _data_advance(segment: BytesSegment, data_advance: DataAdvance) -> int:
    if data_advance is DataAdvance.SIZE_PREFIX:
        return segment.size_of_length + 1
    return segment.length


def _size_ref_cost(program: Program, name: str) -> int:
    return program.bytes_labels[program.size_keys[name]].size_of_length + 1


def _ends_with_empty_data(program: Program, data_advance: DataAdvance) -> bool:
    last = program.segment_order[-1]
    return (
        data_advance is DataAdvance.PAYLOAD
        and last in program.bytes_labels
        and program.bytes_labels[last].length == 0
    )


def resolve_width(
    program: Program,
    data_advance: DataAdvance = DataAdvance.PAYLOAD,
    threshold: int = DEFAULT_WIDTH_THRESHOLD,
) -> int:
    """
    Choose the jump operand width for the whole program.

    In PAYLOAD mode data payloads count towards the minimum size. In
    SIZE_PREFIX mode they count as nothing, matching the legacy layout.

    Args:
        program: Merged program
        data_advance: How data segments count towards the size
        threshold: Largest minimum size that keeps the narrow width

    Returns:
        2 if every offset can fit below the threshold, else 3
    """
    total_min = 0
    dynamic_slots = 0
    for key in program.segment_order:
        if key in program.labels:
            for piece in program.labels[key]:
                if isinstance(piece, HexPiece):
                    total_min += piece.size
                elif program.classify(piece.name) is RefKind.SIZE:
                    total_min += _size_ref_cost(program, piece.name)
                else:
                    dynamic_slots += 1
        elif data_advance is DataAdvance.PAYLOAD:
            total_min += program.bytes_labels[key].length

    minimum = total_min + dynamic_slots * MIN_REFERENCE_SIZE
    # An empty data segment at the end starts at `minimum` itself; every
    # other segment starts at least one byte before the end
    highest = minimum if _ends_with_empty_data(program, data_advance) else minimum - 1
    width = NARROW_WIDTH if highest < threshold else WIDE_WIDTH
    logger.debug(
        f"Minimum size {minimum} bytes ({dynamic_slots} dynamic slots), "
        f"jump width {width}"
    )
    return width


# =============================================================================
# Stage 4: Offset Annotator
# =============================================================================

def piece_size(program: Program, piece: Piece, width: int) -> int:
    """Bytes a piece occupies once encoded at the given width."""
    if isinstance(piece, HexPiece):
        return piece.size
    if program.classify(piece.name) is RefKind.SIZE:
        return _size_ref_cost(program, piece.name)
    return width


def annotate_offsets(
    program: Program,
    width: int,
    data_advance: DataAdvance = DataAdvance.PAYLOAD,
) -> Layout:
    """
    Assign an offset to every code label and data segment.

    Args:
        program: Merged program
        width: Resolved jump operand width
        data_advance: How far a data segment moves the cursor

    Returns:
        Layout with jump destinations and data pointers
    """
    passed = 0
    jumpdests: dict[SegmentKey, int] = {}
    pointers: dict[str, int] = {}

    for key in program.segment_order:
        if key in program.labels:
            jumpdests[key] = passed
            logger.debug(f"Label {key!r} at offset {passed}")
            for piece in program.labels[key]:
                passed += piece_size(program, piece, width)
        else:
            pointers[key] = passed
            logger.debug(f"Data segment {key!r} at offset {passed}")
            passed += _data_advance(program.bytes_labels[key], data_advance)

    return Layout(width=width, jumpdests=jumpdests, pointers=pointers, size=passed)


# =============================================================================
# Stage 5: Back-Patcher and Serializer
# =============================================================================

def _encode_ref(program: Program, layout: Layout, piece: RefPiece) -> str:
    kind = program.classify(piece.name)
    if kind is RefKind.LABEL:
        return encode_push(
            layout.jumpdests[piece.name], layout.width - 1, piece.name, path=piece.path,
        )
    if kind is RefKind.SIZE:
        segment = program.bytes_labels[program.size_keys[piece.name]]
        return encode_push(
            segment.length, segment.size_of_length, piece.name, path=piece.path,
        )
    if kind is RefKind.POINTER:
        pointer = layout.pointers[program.pointer_keys[piece.name]]
        return encode_push(pointer, layout.width - 1, piece.name, path=piece.path)
    raise UnresolvedReferenceError(
        piece.name,
        path=piece.path,
        similar_symbols=difflib.get_close_matches(piece.name, program.known_names(), n=3),
    )


def backpatch(program: Program, layout: Layout) -> dict[SegmentKey, tuple[str, ...]]:
    """
    Encode every code segment's pieces as hex.

    Returns:
        Code segment -> its pieces with every reference replaced

    Raises:
        UnresolvedReferenceError: If a reference names no known label
        OperandRangeError: If an offset does not fit the chosen width
    """
    patched: dict[SegmentKey, tuple[str, ...]] = {}
    for key in program.segment_order:
        if key not in program.labels:
            continue
        patched[key] = tuple(
            piece.hex if isinstance(piece, HexPiece) else _encode_ref(program, layout, piece)
            for piece in program.labels[key]
        )
    return patched


def serialize(program: Program, patched: dict[SegmentKey, tuple[str, ...]]) -> str:
    """Concatenate segments in order into one 0x-prefixed hex string."""
    parts = []
    for key in program.segment_order:
        if key in patched:
            parts.append("".join(patched[key]))
        else:
            parts.append(program.bytes_labels[key].payload)
    return add_hex_prefix("".join(parts))


# =============================================================================
# Code Generator
# =============================================================================

@dataclass(frozen=True)
class GeneratedCode:
    """Everything the pipeline produced for one tree."""
    program: Program
    layout: Layout
    code: str


class CodeGenerator:
    """
    Runs the five stages for one tree at a time.

    Attributes:
        data_advance: How data segments move the offset cursor
        width_threshold: Largest minimum size that keeps 2-byte jumps

    Example:
        >>> gen = CodeGenerator()
        >>> gen.generate(parse_tree(["loop", ["loop", "jump"]])).code
        '0x5b600056'
    """

    def __init__(
        self,
        data_advance: DataAdvance = DataAdvance.PAYLOAD,
        width_threshold: int = DEFAULT_WIDTH_THRESHOLD,
    ):
        self.data_advance = data_advance
        self.width_threshold = width_threshold

    def generate(self, tree: Block) -> GeneratedCode:
        """
        Assemble a parsed tree.

        Returns:
            GeneratedCode with the merged program, its layout and the hex
        """
        program = merge_initial(linearize(tree))
        width = resolve_width(program, self.data_advance, self.width_threshold)
        layout = annotate_offsets(program, width, self.data_advance)
        code = serialize(program, backpatch(program, layout))
        logger.debug(f"Generated {(len(code) - 2) // 2} bytes")
        return GeneratedCode(program=program, layout=layout, code=code)
