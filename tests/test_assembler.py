# =============================================================================
# test_assembler.py - Full Assembler Integration Tests
# =============================================================================
# End-to-end tests for the complete assembler, from raw instruction tree to
# hex byte stream.
#
# Test coverage includes:
#   - Hand-assembled small programs (self loop, data segment, wide jumps)
#   - Jump width boundary at 256 bytes
#   - Constant size limits
#   - Label offsets matching the emitted bytes
#   - Data segment layouts (payload and legacy size-prefix advance)
#   - Error reporting
# =============================================================================

import pytest

from evm_assembler import Assembler, assemble
from evm_assembler.assembler import DataAdvance
from evm_assembler.errors import (
    AssemblerError,
    ConstantOverflowError,
    OperandRangeError,
    TreeShapeError,
    UnknownOpcodeError,
    UnresolvedReferenceError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def filler_program(filler: int) -> list:
    """A label jumping to itself, followed by `filler` STOP bytes."""
    return ["a", ["a", "jump"] + ["stop"] * filler]


GREETING = [
    ["main", [
        "bytes:msg:size", "bytes:msg:ptr", 0, "codecopy",
        "bytes:msg:size", 0, "return",
    ]],
    ["bytes:msg", ["0x68656c6c6f"]],
]

DATA_THEN_CODE = [
    ["main", ["after", "jump"]],
    ["bytes:d", ["0xaabbcc"]],
    ["after", ["stop"]],
]


# =============================================================================
# Full Pipeline Tests
# =============================================================================

class TestFullPipeline:
    """Assemble small programs and compare with hand-assembled output."""

    def test_self_loop(self):
        """A label that jumps to itself: JUMPDEST, PUSH1 0, JUMP."""
        assert assemble(["loop", ["loop", "jump"]]) == "0x5b600056"

    def test_top_level_code_with_forward_reference(self):
        """Unlabeled code comes first and can jump forward."""
        tree = [1, "end", "jumpi", ["end", ["stop"]]]
        result = Assembler().assemble(tree)
        assert result.code == "0x60016005575b00"
        assert result.jumpdests == {"end": 5}
        assert result.width == 2

    def test_data_segment(self):
        """Pointer and size placeholders resolve against the payload."""
        result = Assembler().assemble(GREETING)
        assert result.code == "0x5b6005600d60003960056000f368656c6c6f"
        assert result.pointers == {"bytes:msg": 13}
        assert result.to_bytes()[13:] == b"hello"

    def test_wide_jumps(self):
        """A large filler forces 3-byte (PUSH2) jump operands."""
        tree = [
            ["a", ["b", "jump"] + ["stop"] * 300],
            ["b", ["a", "jump"]],
        ]
        result = Assembler().assemble(tree)
        expected = "0x5b61013156" + "00" * 300 + "5b61000056"
        assert result.width == 3
        assert result.code == expected
        assert result.jumpdests == {"a": 0, "b": 305}

    def test_empty_program(self):
        assert assemble([]) == "0x"

    def test_open_label_collects_later_siblings(self):
        """Instructions after a label's block still belong to that label."""
        result = Assembler().assemble([["a", ["stop"]], "caller"])
        assert result.code == "0x5b0033"

    def test_opcode_in_first_position_is_not_a_declaration(self):
        result = Assembler().assemble(["caller", ["a", ["stop"]]])
        assert result.code == "0x335b00"
        assert result.jumpdests == {"a": 1}

    def test_mnemonics_are_case_insensitive(self):
        assert assemble(["CALLER", "Pop"]) == "0x3350"

    def test_deterministic(self):
        """Assembling the same tree twice gives identical output."""
        asm = Assembler()
        assert asm.assemble(GREETING) == asm.assemble(GREETING)
        assert assemble(GREETING) == assemble(GREETING)

    def test_segment_order(self):
        result = Assembler().assemble(DATA_THEN_CODE)
        assert result.segment_order == ("main", "bytes:d", "after")


# =============================================================================
# Jump Width Tests
# =============================================================================

class TestJumpWidth:
    """Test the 2-byte / 3-byte jump operand decision."""

    def test_minimum_size_256_keeps_narrow_width(self):
        """1 (JUMPDEST) + 2 (ref) + 1 (JUMP) + 252 filler = 256."""
        result = Assembler().assemble(filler_program(252))
        assert result.width == 2
        assert result.size == 256
        assert result.code == "0x5b600056" + "00" * 252

    def test_minimum_size_257_uses_wide_width(self):
        result = Assembler().assemble(filler_program(253))
        assert result.width == 3
        assert result.size == 258
        assert result.code == "0x5b61000056" + "00" * 253

    def test_trailing_empty_data_segment_at_boundary(self):
        """The empty segment would start at 256, past the reach of PUSH1."""
        tree = [
            ["main", ["bytes:e:ptr", "pop"] + ["stop"] * 252],
            ["bytes:e", [""]],
        ]
        result = assemble(tree)
        assert result.width == 3
        assert result.pointers["bytes:e"] == 257
        assert result.code == "0x5b61010150" + "00" * 252

    def test_trailing_empty_data_segment_below_boundary(self):
        tree = [
            ["main", ["bytes:e:ptr", "pop"] + ["stop"] * 251],
            ["bytes:e", [""]],
        ]
        result = assemble(tree)
        assert result.width == 2
        assert result.pointers["bytes:e"] == 255
        assert result.code == "0x5b60ff50" + "00" * 251

    def test_custom_threshold(self):
        result = Assembler(width_threshold=3).assemble(["loop", ["loop", "jump"]])
        assert result.width == 3
        assert result.code == "0x5b61000056"

    def test_program_too_large_for_wide_width(self):
        tree = [
            ["a", ["b", "jump"] + ["stop"] * 66000],
            ["b", ["a", "jump"]],
        ]
        with pytest.raises(OperandRangeError) as exc_info:
            assemble(tree)
        assert exc_info.value.name == "b"
        assert exc_info.value.path == (0, 1, 0)


# =============================================================================
# Label Offset Tests
# =============================================================================

class TestLabelOffsets:
    """Recorded offsets must match the bytes actually emitted."""

    @pytest.mark.parametrize("filler", [0, 10, 252, 253, 400])
    def test_offsets_point_at_jumpdest(self, filler):
        tree = [
            ["first", ["second", "jump"] + ["stop"] * filler],
            ["second", [12345, "first", "jumpi"]],
            ["third", ["first", "second", "third"]],
        ]
        result = Assembler().assemble(tree)
        code = result.to_bytes()
        for name, offset in result.jumpdests.items():
            assert code[offset] == 0x5B, name

    @pytest.mark.parametrize("filler", [0, 300])
    def test_offsets_are_prefix_sums(self, filler):
        """Each label starts where the previous segments end."""
        tree = [
            ["a", ["b", "jump"] + ["stop"] * filler],
            ["b", ["c", "jump"]],
            ["c", ["a", "jump"]],
        ]
        result = Assembler().assemble(tree)
        w = result.width
        assert result.jumpdests["a"] == 0
        assert result.jumpdests["b"] == 1 + w + 1 + filler
        assert result.jumpdests["c"] == result.jumpdests["b"] + 1 + w + 1
        assert result.size == result.jumpdests["c"] + 1 + w + 1


# =============================================================================
# Data Segment Tests
# =============================================================================

class TestDataSegments:
    """Test bytes: labels and their :ptr / :size placeholders."""

    def test_payload_advance_places_following_label_after_payload(self):
        result = Assembler().assemble(DATA_THEN_CODE)
        assert result.code == "0x5b600756aabbcc5b00"
        assert result.pointers == {"bytes:d": 4}
        assert result.jumpdests == {"main": 0, "after": 7}

    def test_size_prefix_advance_keeps_legacy_layout(self):
        asm = Assembler(data_advance=DataAdvance.SIZE_PREFIX)
        result = asm.assemble(DATA_THEN_CODE)
        assert result.code == "0x5b600656aabbcc5b00"
        assert result.jumpdests["after"] == 6

    def test_size_prefix_offset_past_narrow_reach_is_rejected(self):
        """Legacy width ignores data, so a label after it can outgrow PUSH1."""
        tree = [
            ["a", ["b", "jump"] + ["stop"] * 250],
            ["bytes:d", ["ff"]],
            ["b", ["stop"]],
        ]
        asm = Assembler(data_advance=DataAdvance.SIZE_PREFIX)
        with pytest.raises(OperandRangeError) as exc_info:
            asm.assemble(tree)
        assert exc_info.value.value == 256
        assert exc_info.value.path == (0, 1, 0)

    def test_pointer_resolves_to_segment_start(self):
        tree = [
            ["main", ["bytes:d:ptr", "pop"]],
            ["bytes:d", ["0x01"]],
        ]
        result = Assembler().assemble(tree)
        assert result.pointers["bytes:d"] == 4
        assert result.code == "0x5b60045001"

    def test_size_uses_minimal_length_bytes(self):
        """A 256-byte payload needs a 2-byte size: PUSH2 0x0100."""
        tree = [
            ["main", ["bytes:big:size"]],
            ["bytes:big", ["0x" + "ab" * 256]],
        ]
        result = Assembler().assemble(tree)
        assert result.code.startswith("0x5b610100")

    def test_odd_length_payload_is_left_padded(self):
        tree = [
            ["main", ["bytes:p:size"]],
            ["bytes:p", ["0xabc"]],
        ]
        assert assemble(tree) == "0x5b60020abc"

    def test_empty_payload(self):
        tree = [
            ["main", ["bytes:e:size"]],
            ["bytes:e", [""]],
        ]
        assert assemble(tree) == "0x5b6000"

    def test_data_reference_before_declaration(self):
        tree = [
            "caller",
            "bytes:late:ptr",
            ["bytes:late", ["ff"]],
        ]
        assert assemble(tree) == "0x336003ff"


# =============================================================================
# Constant Tests
# =============================================================================

class TestConstants:
    """Test numeric literal encoding."""

    @pytest.mark.parametrize("value,expected", [
        (0, "0x6000"),
        (255, "0x60ff"),
        (256, "0x610100"),
        ("300", "0x61012c"),
        ("0x10", "0x6010"),
    ])
    def test_narrowest_push(self, value, expected):
        assert assemble([value]) == expected

    def test_32_byte_constant(self):
        assert assemble([2 ** 256 - 1]) == "0x7f" + "ff" * 32

    def test_33_byte_constant_overflows(self):
        with pytest.raises(ConstantOverflowError) as exc_info:
            assemble([2 ** 256])
        assert exc_info.value.value == 2 ** 256


# =============================================================================
# Error Reporting Tests
# =============================================================================

class TestErrors:
    """Test error detection and messages."""

    def test_unresolved_reference(self):
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            assemble(["a", ["stop", "nowhere", "jump"]])
        assert exc_info.value.name == "nowhere"
        assert exc_info.value.path == (1, 1)
        assert "at tree position [1, 1]" in str(exc_info.value)

    def test_unresolved_reference_suggests_similar(self):
        tree = [
            ["main", ["bytes:msg", "pop"]],
            ["bytes:msg", ["0x01"]],
        ]
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            assemble(tree)
        assert "bytes:msg:ptr" in exc_info.value.similar_symbols

    def test_unknown_opcode(self):
        with pytest.raises(UnknownOpcodeError) as exc_info:
            assemble(["a", ["jump!"]])
        assert exc_info.value.token == "jump!"
        assert exc_info.value.path == (1, 0)

    def test_duplicate_label(self):
        with pytest.raises(TreeShapeError, match="duplicate label"):
            assemble([["a", ["stop"]], ["a", ["stop"]]])

    def test_errors_share_base_class(self):
        with pytest.raises(AssemblerError):
            assemble(["a", ["nowhere"]])

    def test_no_partial_output(self):
        """A failing assembly raises instead of returning anything."""
        asm = Assembler()
        with pytest.raises(AssemblerError):
            asm.assemble([1, 2, "undefined_label"])
        assert asm.assemble([1]).code == "0x6001"


# =============================================================================
# File Input / Output Tests
# =============================================================================

class TestFileIO:
    """Test JSON input and hex / binary output."""

    def test_assemble_file(self, tmp_path):
        source = tmp_path / "loop.json"
        source.write_text('["loop", ["loop", "jump"]]')
        result = Assembler().assemble_file(source)
        assert result.code == "0x5b600056"

    def test_assemble_json(self):
        result = Assembler().assemble_json('[["x", [1, "x", "jumpi"]]]')
        assert result.code == "0x5b6001600057"

    def test_write_outputs(self, tmp_path):
        result = Assembler().assemble(["loop", ["loop", "jump"]])
        result.write_hex(tmp_path / "out.hex")
        result.write_binary(tmp_path / "out.bin")
        assert (tmp_path / "out.hex").read_text() == "0x5b600056\n"
        assert (tmp_path / "out.bin").read_bytes() == bytes([0x5B, 0x60, 0x00, 0x56])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Assembler().assemble_file(tmp_path / "missing.json")
