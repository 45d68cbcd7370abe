"""
EVM Assembler Command-Line Interface
====================================

This package provides the command-line tool for the assembler:

- **evmasm**: assemble a JSON instruction tree into EVM bytecode

The tool is a Click-based CLI application with help and error reporting.
"""

__all__ = ["evmasm"]
