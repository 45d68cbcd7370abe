"""
Hex String Helpers
==================

Small byte-string primitives shared by the code generator. Everything in
the assembler is carried as lower-case hex text without a prefix until the
final serialization step adds one.
"""

from typing import Union

HEX_PREFIX = "0x"


def is_hex_prefixed(s: str) -> bool:
    """Return True if the string starts with 0x or 0X."""
    return s[:2].lower() == HEX_PREFIX


def add_hex_prefix(s: str) -> str:
    """Add the 0x prefix unless it is already there."""
    return s if is_hex_prefixed(s) else HEX_PREFIX + s


def strip_hex_prefix(s: str) -> str:
    """Remove a leading 0x/0X prefix if present."""
    return s[2:] if is_hex_prefixed(s) else s


def left_zero_pad_to_byte_length(s: str, length: int) -> str:
    """
    Pad a hex string on the left with zeros to exactly `length` bytes.

    Strings already longer than the requested length are returned
    unchanged; callers that need a hard limit check it themselves.
    """
    return s.rjust(length * 2, "0")


def byte_length(n: int) -> int:
    """Minimal number of big-endian bytes needed to hold n (0 for 0)."""
    return (n.bit_length() + 7) // 8


def coerce_to_int(token: Union[int, str]) -> int:
    """
    Convert a numeric leaf to an int.

    Accepts Python ints, decimal strings and 0x-prefixed hex strings.

    Raises:
        ValueError: If the token is not numeric
    """
    if isinstance(token, bool):
        raise ValueError(f"not a number: {token!r}")
    if isinstance(token, int):
        return token
    text = token.strip()
    if is_hex_prefixed(text):
        return int(text[2:], 16)
    return int(text, 10)


def is_numeric(token: Union[int, str]) -> bool:
    """Return True if coerce_to_int would accept the token."""
    try:
        coerce_to_int(token)
    except (ValueError, TypeError, AttributeError):
        return False
    return True
