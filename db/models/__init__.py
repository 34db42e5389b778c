"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.contact_person import ContactPerson
from db.models.medical_institution import MedicalInstitution
from db.models.medical_profile import MedicalProfile

__all__ = [
    "ContactPerson",
    "MedicalInstitution",
    "MedicalProfile",
]
