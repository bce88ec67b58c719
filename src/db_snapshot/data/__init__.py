"""Row data export and import.

Usage:
    from db_snapshot.data import export_data, import_data
"""

from db_snapshot.data.tsv import decode_row, encode_row, export_data, import_data

__all__ = [
    "export_data",
    "import_data",
    "encode_row",
    "decode_row",
]
