"""
db/models/medical_institution.py

Medical institution records created and merged by CSV imports.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin, UuidPrimaryKeyMixin


class MedicalInstitution(Base, UuidPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "medical_institutions"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="hospital, clinic, medical_center, specialty_clinic",
    )
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(120), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(80), nullable=False)
    accounting_number: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
        comment="Externally governed accounting identifier",
    )
    external_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Identifier resolved by the reference lookup service",
    )
    assigned_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    data_source: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="import, manual, api",
    )

    __table_args__ = (
        Index("ix_medical_institutions_city", "city"),
        Index("ix_medical_institutions_name", "name"),
        Index("ix_medical_institutions_city_zip_code", "city", "zip_code"),
    )
