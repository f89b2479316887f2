from datetime import date

import pytest

from storeops.services.accounting_parsers.csv_parser import (
    StatementFormatError,
    detect_columns,
    parse_amount,
    parse_statement,
    parse_statement_bytes,
    tokenize_csv,
)


def test_tokenize_quoted_fields_round_trip():
    text = 'a,"b, with comma","line one\nline two","say ""hi"""\r\n1,2,3,4\r\n'
    rows = tokenize_csv(text)
    assert rows == [
        ["a", "b, with comma", "line one\nline two", 'say "hi"'],
        ["1", "2", "3", "4"],
    ]


def test_tokenize_crlf_and_lf_mixed():
    rows = tokenize_csv("h1,h2\r\nx,y\nz,w")
    assert rows == [["h1", "h2"], ["x", "y"], ["z", "w"]]


def test_tokenize_blank_trailing_line_not_emitted():
    rows = tokenize_csv("h1,h2\nx,y\n\n")
    assert rows == [["h1", "h2"], ["x", "y"]]


def test_tokenize_trims_cells():
    assert tokenize_csv("  a , b  \n") == [["a", "b"]]


def test_detect_columns_exact_then_substring():
    columns = detect_columns(["Posted Date", "Merchant Name", "Transaction Amount"])
    assert columns.date == 0
    assert columns.description == 1
    assert columns.amount == 2
    assert columns.vendor == 1

    columns = detect_columns(["Txn Date (local)", "Memo", "Debit Amount"])
    assert columns.date == 0
    assert columns.description == 1
    assert columns.amount == 2
    assert columns.vendor is None


def test_missing_required_columns_reports_headers():
    with pytest.raises(StatementFormatError) as excinfo:
        parse_statement("Description,Vendor\nCoffee,Cafe\n")
    assert excinfo.value.headers == ["Description", "Vendor"]
    assert excinfo.value.hint


def test_header_only_is_an_error():
    with pytest.raises(StatementFormatError):
        parse_statement("Date,Description,Amount\n")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("-12.50", -12.5),
        ("$1,234.56", 1234.56),
        ("USD 9.99", 9.99),
        ("0.00", None),
        ("", None),
        ("abc", None),
        ("1.2.3", 1.2),
        ("12.50-", 12.5),
        ("-", None),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_shippo_statement_row():
    parsed = parse_statement("Date,Merchant Name,Amount\n2024-01-05,SHIPPO INC,-12.50\n")

    assert len(parsed.rows) == 1
    row = parsed.rows[0]
    assert row.amount == 12.50
    assert row.vendor == "SHIPPO INC"
    assert row.description == "SHIPPO INC"
    assert row.transaction_date == date(2024, 1, 5)


def test_rows_with_bad_amounts_are_skipped_not_errors():
    text = "Date,Description,Amount\n2024-01-01,Good,10\n2024-01-02,Zero,0\n2024-01-03,Blank,\n2024-01-04,Text,n/a\n"
    parsed = parse_statement(text)
    assert [r.description for r in parsed.rows] == ["Good"]
    assert parsed.skipped == 3


def test_unparseable_date_is_stored_as_none():
    parsed = parse_statement("Date,Description,Amount\nnot a date,Coffee,4.50\n")
    assert parsed.rows[0].transaction_date is None
    assert parsed.rows[0].amount == 4.5


def test_vendor_falls_back_to_first_three_words():
    parsed = parse_statement("Date,Description,Amount\n2024-02-01,AMAZON MKTPLACE PMTS SEATTLE WA,25.00\n")
    assert parsed.rows[0].vendor == "AMAZON MKTPLACE PMTS"


def test_blank_vendor_cell_falls_back_to_description():
    text = "Date,Description,Vendor,Amount\n2024-02-01,UBER TRIP HELP.UBER.COM CA,,18.20\n2024-02-02,Rent,Landlord LLC,900\n"
    parsed = parse_statement(text)
    assert [r.vendor for r in parsed.rows] == ["UBER TRIP HELP.UBER.COM", "Landlord LLC"]


def test_trailing_minus_debit_is_accepted():
    parsed = parse_statement("Date,Description,Debit\n2024-02-01,Stamps.com,12.50-\n")
    assert parsed.skipped == 0
    assert parsed.rows[0].amount == 12.5


def test_sign_is_discarded():
    parsed = parse_statement("Date,Description,Amount\n2024-02-01,Refund,15.00\n2024-02-02,Charge,-15.00\n")
    assert [r.amount for r in parsed.rows] == [15.0, 15.0]


def test_long_text_is_truncated():
    description = "X" * 600
    parsed = parse_statement(f"Date,Description,Vendor,Amount\n2024-02-01,{description},{'V' * 300},5\n")
    assert len(parsed.rows[0].description) == 500
    assert len(parsed.rows[0].vendor) == 200


def test_parse_bytes_with_bom():
    parsed = parse_statement_bytes("\ufeffDate,Description,Amount\n2024-03-01,Tape,3.25\n".encode("utf-8"))
    assert parsed.headers[0] == "Date"
    assert parsed.rows[0].amount == 3.25
