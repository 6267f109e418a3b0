from __future__ import annotations

from datetime import date, datetime

import pytest

from conftest import xlsx_bytes

from erpforge.core.tabular.decoder import TabularDecodeError, decode_table, read_table


def test_xlsx_first_sheet_only_and_blank_rows_skipped():
    data = xlsx_bytes(
        [
            ("이름", "이메일", "가입일", "나이"),
            ("Kim", "kim@example.com", date(2024, 3, 1), 31),
            (None, None, None, None),
            ("Lee", None, datetime(2024, 3, 2, 9, 30), None),
        ],
        [("other",), ("ignored",)],
    )

    rows = decode_table(data, "users.xlsx")

    assert rows == [
        {"이름": "Kim", "이메일": "kim@example.com", "가입일": "2024-03-01", "나이": 31},
        {"이름": "Lee", "가입일": "2024-03-02T09:30:00"},
    ]


def test_xlsx_columns_without_header_are_dropped():
    data = xlsx_bytes([("name", None), ("Kim", "orphan")])
    assert decode_table(data, "x.xlsx") == [{"name": "Kim"}]


def test_xlsx_header_only_raises():
    with pytest.raises(TabularDecodeError, match="No data found"):
        decode_table(xlsx_bytes([("name", "email")]), "empty.xlsx")


def test_csv_with_bom():
    data = "\ufeffname,email\nKim,kim@example.com\n,\nLee,\n".encode("utf-8")
    assert decode_table(data, "users.csv") == [
        {"name": "Kim", "email": "kim@example.com"},
        {"name": "Lee"},
    ]


def test_corrupt_workbook_raises():
    with pytest.raises(TabularDecodeError):
        decode_table(b"PK\x03\x04 definitely not a zip", "broken.xlsx")


def test_unsupported_extension_raises():
    with pytest.raises(TabularDecodeError, match="Unsupported"):
        decode_table(b"hello", "notes.txt")


def test_non_utf8_csv_raises():
    with pytest.raises(TabularDecodeError):
        decode_table("이름\n김".encode("cp949"), "users.csv")


def test_read_table_labels_come_from_header_row():
    data = xlsx_bytes(
        [
            ("이름", "이메일", None, "전화번호"),
            ("Kim", None, "x", "010-1"),
            ("Lee", "lee@example.com", None, "010-2"),
        ]
    )

    table = read_table(data, "users.xlsx")

    assert table.labels == ["이름", "이메일", "전화번호"]
    assert table.records[0] == {"이름": "Kim", "전화번호": "010-1"}


def test_read_table_csv_labels():
    table = read_table("name,email\nKim,\n".encode("utf-8"), "users.csv")
    assert table.labels == ["name", "email"]
    assert table.records == [{"name": "Kim"}]
