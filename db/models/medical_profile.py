"""
db/models/medical_profile.py

Medical capacity and compliance profile, one per institution.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin, UuidPrimaryKeyMixin


class MedicalProfile(Base, UuidPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "medical_profiles"

    institution_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("medical_institutions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    bed_capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    surgical_rooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    specialties: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    departments: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    equipment_types: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    certifications: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    compliance_status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="pending_review",
        comment="compliant, non_compliant, pending_review, expired",
    )
    last_audit_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    compliance_expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    compliance_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
