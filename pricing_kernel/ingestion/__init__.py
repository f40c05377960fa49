"""File readers feeding the material index."""

from pricing_kernel.ingestion.csv_index_reader import CsvIndexReader

__all__ = ["CsvIndexReader"]
