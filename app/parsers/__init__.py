"""
app/parsers package marker.
"""

from app.parsers.csv_parser import CSVStructureError, InstitutionCSVParser, split_csv_line

__all__ = [
    "CSVStructureError",
    "InstitutionCSVParser",
    "split_csv_line",
]
