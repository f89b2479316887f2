"""Parsing helpers for expense statement imports.

This package contains:
- CSV statement parser (csv_parser.py) - header detection, quoted fields
"""

from .csv_parser import (
    ColumnMap,
    ParsedStatement,
    StatementFormatError,
    StatementRow,
    detect_columns,
    parse_statement,
    parse_statement_bytes,
)

__all__ = [
    "ColumnMap",
    "ParsedStatement",
    "StatementFormatError",
    "StatementRow",
    "detect_columns",
    "parse_statement",
    "parse_statement_bytes",
]
