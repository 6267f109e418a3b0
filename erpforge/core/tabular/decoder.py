"""Tabular file decoding: uploaded bytes -> flat records.

``.xlsx`` workbooks are read with openpyxl (first sheet only, values not
formulas). ``.csv`` is read as UTF-8, with or without BOM. In both cases
the first row is the header and becomes the record keys; empty cells are
left out of the record and rows with no values at all are skipped.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

_log = logging.getLogger("erpforge.tabular")

Record = Dict[str, Any]

XLSX_SUFFIXES = (".xlsx", ".xlsm")
CSV_SUFFIXES = (".csv",)
SUPPORTED_SUFFIXES = XLSX_SUFFIXES + CSV_SUFFIXES


class TabularDecodeError(Exception):
    def __init__(self, message: str, *, filename: Optional[str] = None):
        self.filename = filename
        super().__init__(message)


@dataclass
class DecodedTable:
    """Header labels in column order plus the decoded rows."""

    labels: List[str] = field(default_factory=list)
    records: List[Record] = field(default_factory=list)


def _cell_value(v: Any) -> Any:
    if isinstance(v, datetime):
        if v.time() == time(0, 0):
            return v.date().isoformat()
        return v.isoformat()
    if isinstance(v, (date, time)):
        return v.isoformat()
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def _header(cells: Sequence[Any]) -> List[Optional[str]]:
    out: List[Optional[str]] = []
    for c in cells:
        label = _cell_value(c)
        out.append(str(label) if label is not None else None)
    return out


def _records(header: Sequence[Optional[str]], rows: Iterable[Sequence[Any]]) -> List[Record]:
    records: List[Record] = []
    for row in rows:
        rec: Record = {}
        for label, raw in zip(header, row):
            if label is None:
                continue
            value = _cell_value(raw)
            if value is None:
                continue
            rec[label] = value
        if rec:
            records.append(rec)
    return records


def _table(header: Sequence[Optional[str]], rows: Iterable[Sequence[Any]]) -> DecodedTable:
    labels = list(dict.fromkeys(label for label in header if label is not None))
    return DecodedTable(labels=labels, records=_records(header, rows))


def decode_xlsx(data: bytes) -> DecodedTable:
    try:
        wb = load_workbook(io.BytesIO(data), data_only=True, read_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
        raise TabularDecodeError(f"Failed to read workbook: {exc}") from exc

    try:
        if not wb.sheetnames:
            return DecodedTable()
        ws = wb[wb.sheetnames[0]]
        rows = ws.iter_rows(values_only=True)
        first = next(rows, None)
        if first is None:
            return DecodedTable()
        return _table(_header(first), rows)
    finally:
        wb.close()


def decode_csv(data: bytes) -> DecodedTable:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise TabularDecodeError(f"CSV file is not valid UTF-8: {exc}") from exc

    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        first = next(reader, None)
        if first is None:
            return DecodedTable()
        return _table(_header(first), reader)
    except csv.Error as exc:
        raise TabularDecodeError(f"Failed to read CSV: {exc}") from exc


def read_table(data: bytes, filename: str = "") -> DecodedTable:
    """Decode an uploaded table. Raises ``TabularDecodeError`` when no data rows come out."""
    name = (filename or "").lower()
    if name.endswith(CSV_SUFFIXES):
        table = decode_csv(data)
    elif name.endswith(XLSX_SUFFIXES) or data[:2] == b"PK":
        table = decode_xlsx(data)
    else:
        raise TabularDecodeError(f"Unsupported file type: {filename or '(unnamed)'}", filename=filename)

    if not table.records:
        raise TabularDecodeError("No data found in file", filename=filename)
    _log.info("Decoded %s: %d rows, %d columns", filename or "upload", len(table.records), len(table.labels))
    return table


def decode_table(data: bytes, filename: str = "") -> List[Record]:
    return read_table(data, filename).records
