"""
app/schemas package marker.
"""

from app.schemas.institution_import import (
    ImportResultResponse,
    ImportRowErrorResponse,
    RowOutcomeResponse,
    ValidationSummaryResponse,
)

__all__ = [
    "ImportResultResponse",
    "ImportRowErrorResponse",
    "RowOutcomeResponse",
    "ValidationSummaryResponse",
]
