"""
CSV reader for material index price files.

Uses csv.DictReader.  Configurable: delimiter, encoding, skip_rows.  Handles
BOM via utf-8-sig when encoding is utf-8.  Streams rows; header names are
normalized (stripped, lower-cased, spaces to underscores) and empty cells
become None.

Expected columns: material, price_date, price_usd_per_mt; optional
index_source, data_period, fx_rate_cny_usd.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterator

from pricing_kernel.exceptions import InvalidIndexEntryError

REQUIRED_COLUMNS = ("material", "price_date", "price_usd_per_mt")
OPTIONAL_COLUMNS = ("index_source", "data_period", "fx_rate_cny_usd")


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


def _normalize_header(name: str | None) -> str:
    return (name or "").strip().lower().replace(" ", "_")


class CsvIndexReader:
    """Read index CSV files as one dict per row."""

    def read(
        self,
        source_path: Path | str,
        options: dict[str, Any] | None = None,
    ) -> Iterator[dict[str, Any]]:
        """
        Yield normalized row dicts.

        Raises:
            InvalidIndexEntryError: when a required column is missing from
                the header.
        """
        options = options or {}
        path = Path(source_path)
        encoding = _get_encoding(options)
        delimiter = options.get("delimiter", ",")
        skip_rows = int(options.get("skip_rows", 0))

        with path.open("r", encoding=encoding, newline="") as f:
            for _ in range(skip_rows):
                next(f, None)
            reader = csv.DictReader(f, delimiter=delimiter)
            headers = [_normalize_header(h) for h in (reader.fieldnames or [])]
            for column in REQUIRED_COLUMNS:
                if column not in headers:
                    raise InvalidIndexEntryError(
                        field=column,
                        reason=f"Column missing from {path.name}",
                        actual=headers,
                    )
            reader.fieldnames = headers
            wanted = REQUIRED_COLUMNS + OPTIONAL_COLUMNS
            for row in reader:
                if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                    continue
                yield {
                    key: (row.get(key) or "").strip() or None
                    for key in wanted
                    if key in row
                }
