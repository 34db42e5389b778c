"""
app/mappers package marker.
"""

from app.mappers.field_mapper import CANONICAL_FIELDS, REQUIRED_FIELDS, FieldMapper

__all__ = [
    "CANONICAL_FIELDS",
    "REQUIRED_FIELDS",
    "FieldMapper",
]
