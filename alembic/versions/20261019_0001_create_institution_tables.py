"""create medical institution, profile and contact tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "medical_institutions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("street", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=False),
        sa.Column("state", sa.String(length=120), nullable=False),
        sa.Column("zip_code", sa.String(length=20), nullable=False),
        sa.Column("country", sa.String(length=80), nullable=False),
        sa.Column("accounting_number", sa.String(length=64), nullable=True),
        sa.Column("external_id", sa.String(length=128), nullable=True),
        sa.Column("assigned_user_id", sa.String(length=64), nullable=True),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("data_source", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("accounting_number"),
    )
    op.create_index("ix_medical_institutions_city", "medical_institutions", ["city"], unique=False)
    op.create_index("ix_medical_institutions_name", "medical_institutions", ["name"], unique=False)
    op.create_index(
        "ix_medical_institutions_city_zip_code",
        "medical_institutions",
        ["city", "zip_code"],
        unique=False,
    )

    op.create_table(
        "medical_profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("institution_id", sa.Uuid(), nullable=False),
        sa.Column("bed_capacity", sa.Integer(), nullable=True),
        sa.Column("surgical_rooms", sa.Integer(), nullable=True),
        sa.Column("specialties", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("departments", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("equipment_types", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("certifications", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("compliance_status", sa.String(length=32), nullable=False),
        sa.Column("last_audit_date", sa.Date(), nullable=True),
        sa.Column("compliance_expiration_date", sa.Date(), nullable=True),
        sa.Column("compliance_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["institution_id"], ["medical_institutions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("institution_id"),
    )

    op.create_table(
        "contact_persons",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("institution_id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=False),
        sa.Column("last_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("title", sa.String(length=120), nullable=True),
        sa.Column("department", sa.String(length=120), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False),
        sa.Column("data_source", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["institution_id"], ["medical_institutions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contact_persons_institution_id", "contact_persons", ["institution_id"], unique=False)
    op.create_index("ix_contact_persons_email", "contact_persons", ["email"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_contact_persons_email", table_name="contact_persons")
    op.drop_index("ix_contact_persons_institution_id", table_name="contact_persons")
    op.drop_table("contact_persons")
    op.drop_table("medical_profiles")
    op.drop_index("ix_medical_institutions_city_zip_code", table_name="medical_institutions")
    op.drop_index("ix_medical_institutions_name", table_name="medical_institutions")
    op.drop_index("ix_medical_institutions_city", table_name="medical_institutions")
    op.drop_table("medical_institutions")
