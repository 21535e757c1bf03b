"""
tabular.py
CSV parsing for published spreadsheet exports.
Everything comes back as raw strings; numeric coercion happens later.
"""

import csv
import io

BOM = "\ufeff"


def parse_rows(text: str, delimiter: str = ",") -> list[list[str]]:
    """
    Split raw text into rows of trimmed cells.

    Quoted cells may hold the delimiter or newlines, and a doubled quote
    inside quotes is one literal quote. Rows that are blank in every cell
    are dropped.
    """
    if not text:
        return []
    if text.startswith(BOM):
        text = text[1:]
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    rows = []
    for row in csv.reader(io.StringIO(text, newline=""), delimiter=delimiter):
        cells = [c.strip() for c in row]
        if any(cells):
            rows.append(cells)
    return rows


def rows_to_records(rows: list[list[str]]) -> tuple[list[str], list[dict]]:
    """First row is the header; every other row is zipped to it by position."""
    if not rows:
        return [], []
    headers = rows[0]
    width = len(headers)
    records = []
    for r in rows[1:]:
        padded = r[:width] + [""] * (width - len(r))
        records.append(dict(zip(headers, padded)))
    return headers, records


def parse_csv(text: str, delimiter: str = ",") -> tuple[list[str], list[dict]]:
    """Raw CSV text -> (headers, records). Empty input gives ([], [])."""
    return rows_to_records(parse_rows(text, delimiter))
