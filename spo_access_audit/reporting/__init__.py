"""Reporting package — tabular and JSON output generation."""

from .csv_export import export_csv, read_records_csv
from .json_export import export_json

__all__ = [
    "export_csv",
    "export_json",
    "read_records_csv",
]
