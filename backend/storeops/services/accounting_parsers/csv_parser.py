import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from storeops.utils.timezones import parse_date

DATE_CANDIDATES = ["date", "transaction date", "trans date", "posting date", "posted date"]
DESCRIPTION_CANDIDATES = ["description", "memo", "details", "transaction", "merchant name", "name"]
AMOUNT_CANDIDATES = ["amount", "debit", "charge", "transaction amount"]
VENDOR_CANDIDATES = ["vendor", "merchant", "payee", "merchant name"]

MAX_DESCRIPTION_LENGTH = 500
MAX_VENDOR_LENGTH = 200

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")


class StatementFormatError(ValueError):
    """Raised when a CSV cannot be mapped to statement columns."""

    def __init__(self, message: str, headers: Optional[List[str]] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers or []
        self.hint = hint


@dataclass
class ColumnMap:
    date: Optional[int] = None
    description: Optional[int] = None
    amount: Optional[int] = None
    vendor: Optional[int] = None


@dataclass
class StatementRow:
    line_number: int
    transaction_date: Optional[date]
    description: str
    vendor: str
    amount: float
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedStatement:
    headers: List[str]
    columns: ColumnMap
    rows: List[StatementRow]
    skipped: int = 0


def _normalize_header(name: str) -> str:
    return " ".join((name or "").strip().split()).lower()


def tokenize_csv(text: str) -> List[List[str]]:
    """Split CSV text into rows of trimmed cells.

    Handles quoted fields with embedded commas/newlines, doubled quotes and
    CRLF or LF line endings. Completely blank lines are dropped.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    rows: List[List[str]] = []
    for raw in csv.reader(io.StringIO(text, newline="")):
        cells = [cell.strip() for cell in raw]
        if not any(cells):
            continue
        rows.append(cells)
    return rows


def find_column(headers: List[str], candidates: List[str]) -> Optional[int]:
    normalized = [_normalize_header(h) for h in headers]
    for candidate in candidates:
        if candidate in normalized:
            return normalized.index(candidate)
    for candidate in candidates:
        for idx, header in enumerate(normalized):
            if candidate in header:
                return idx
    return None


def detect_columns(headers: List[str]) -> ColumnMap:
    columns = ColumnMap(
        date=find_column(headers, DATE_CANDIDATES),
        description=find_column(headers, DESCRIPTION_CANDIDATES),
        amount=find_column(headers, AMOUNT_CANDIDATES),
        vendor=find_column(headers, VENDOR_CANDIDATES),
    )
    if columns.date is None or columns.amount is None:
        raise StatementFormatError(
            "Could not find required columns (date, amount)",
            headers=headers,
            hint="Expected a date column (e.g. 'Date', 'Posting Date') and an amount column (e.g. 'Amount', 'Debit').",
        )
    return columns


def parse_amount(value: Optional[str]) -> Optional[float]:
    """Parse an amount cell; returns None for blank, malformed or zero values.

    Only the leading number counts, so bank exports that print debits as
    ``12.50-`` still parse.
    """
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", value or ""))
    if not match:
        return None
    amount = float(match.group(0))
    if amount == 0:
        return None
    return amount


def _cell(row: List[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return row[idx]


def vendor_from_description(description: str) -> str:
    return " ".join(description.split()[:3])


def parse_statement(text: str) -> ParsedStatement:
    rows = tokenize_csv(text)
    if len(rows) < 2:
        raise StatementFormatError("CSV file has no data rows", headers=rows[0] if rows else [])

    headers = rows[0]
    columns = detect_columns(headers)

    parsed: List[StatementRow] = []
    skipped = 0
    for line_number, row in enumerate(rows[1:], start=1):
        if len(row) < 2:
            skipped += 1
            continue
        amount = parse_amount(_cell(row, columns.amount))
        if amount is None:
            skipped += 1
            continue

        description = _cell(row, columns.description)
        vendor = _cell(row, columns.vendor) or vendor_from_description(description)
        parsed.append(
            StatementRow(
                line_number=line_number,
                transaction_date=parse_date(_cell(row, columns.date)),
                description=description[:MAX_DESCRIPTION_LENGTH],
                vendor=vendor[:MAX_VENDOR_LENGTH],
                amount=round(abs(amount), 2),
                raw={header: _cell(row, idx) for idx, header in enumerate(headers)},
            )
        )

    return ParsedStatement(headers=headers, columns=columns, rows=parsed, skipped=skipped)


def parse_statement_bytes(file_bytes: bytes) -> ParsedStatement:
    return parse_statement(file_bytes.decode("utf-8", errors="ignore"))
