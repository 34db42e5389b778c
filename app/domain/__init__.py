"""
app/domain package marker.
"""

from app.domain.institution_import import (
    CanonicalRow,
    ImportOptions,
    ImportResult,
    ImportRowError,
    MatchInput,
    MatchResult,
    MatchType,
    ValidatedRow,
    ValidationIssue,
    ValidationSummary,
)

__all__ = [
    "CanonicalRow",
    "ImportOptions",
    "ImportResult",
    "ImportRowError",
    "MatchInput",
    "MatchResult",
    "MatchType",
    "ValidatedRow",
    "ValidationIssue",
    "ValidationSummary",
]
