"""
app/services package marker.
"""

from app.services.institution_import_service import (
    DuplicateInstitutionError,
    InstitutionImportService,
    build_institution_import_service,
)

__all__ = [
    "DuplicateInstitutionError",
    "InstitutionImportService",
    "build_institution_import_service",
]
