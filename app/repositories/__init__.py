"""
app/repositories package marker.
"""

from app.repositories.base import InstitutionPersistenceError, InstitutionRepository
from app.repositories.institution_repository import SQLAlchemyInstitutionRepository

__all__ = [
    "InstitutionPersistenceError",
    "InstitutionRepository",
    "SQLAlchemyInstitutionRepository",
]
