"""
app/validators package marker.
"""

from app.validators.institution_row_validator import InstitutionRowValidator

__all__ = [
    "InstitutionRowValidator",
]
