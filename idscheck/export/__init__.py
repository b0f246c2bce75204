"""Export validation rows to interchange formats."""

from idscheck.export.exporter import CSV_HEADER, to_csv, to_json, write_csv, write_json

__all__ = ["CSV_HEADER", "to_csv", "to_json", "write_csv", "write_json"]
