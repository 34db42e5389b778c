"""
app/repositories/institution_repository.py

SQLAlchemy implementation of the institution repository.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.institution_import import (
    IMPORT_DATA_SOURCE,
    ComplianceStatus,
    ContactFields,
    ContactIdentity,
    ContactRecord,
    InstitutionFields,
    InstitutionRecord,
    ProfileFields,
)
from app.repositories.base import InstitutionPersistenceError, InstitutionRepository
from db.models.contact_person import ContactPerson
from db.models.medical_institution import MedicalInstitution
from db.models.medical_profile import MedicalProfile
from matching.normalizer import normalize_name

logger = logging.getLogger(__name__)

_INSTITUTION_ATTRIBUTES = frozenset(InstitutionFields.__dataclass_fields__) | {"is_active"}
_CONTACT_ATTRIBUTES = frozenset(ContactFields.__dataclass_fields__) | {"is_locked"}

DEFAULT_CONTACT_FIRST_NAME = "Contact"
DEFAULT_CONTACT_LAST_NAME = "Imported"


class SQLAlchemyInstitutionRepository(InstitutionRepository):
    """
    Institution repository backed by one SQLAlchemy session.

    Writes are flushed immediately so later lookups in the same import run
    see them; the caller decides when to commit or roll back.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_institution_by_accounting_number(self, code: str) -> InstitutionRecord | None:
        normalized = (code or "").strip().upper()
        if not normalized:
            return None

        stmt = (
            select(MedicalInstitution)
            .where(func.upper(func.trim(MedicalInstitution.accounting_number)) == normalized)
            .order_by(MedicalInstitution.created_at)
            .limit(1)
        )
        institution = self._session.execute(stmt).scalars().first()
        return _to_institution_record(institution) if institution is not None else None

    def find_institutions_by_name_and_city(
        self,
        name: str,
        city: str,
        *,
        limit: int = 500,
    ) -> list[InstitutionRecord]:
        city_key = (city or "").strip().lower()
        if not city_key:
            return []

        exact_name_first = case(
            (func.lower(func.trim(MedicalInstitution.name)) == (name or "").strip().lower(), 0),
            else_=1,
        )
        stmt = (
            select(MedicalInstitution)
            .where(func.lower(func.trim(MedicalInstitution.city)) == city_key)
            .order_by(exact_name_first, MedicalInstitution.created_at, MedicalInstitution.name)
            .limit(max(1, limit))
        )
        return [_to_institution_record(row) for row in self._session.execute(stmt).scalars()]

    def find_institution_exact(
        self,
        name: str,
        street: str,
        city: str,
        zip_code: str,
    ) -> InstitutionRecord | None:
        stmt = (
            select(MedicalInstitution)
            .where(
                func.lower(func.trim(MedicalInstitution.street)) == street.strip().lower(),
                func.lower(func.trim(MedicalInstitution.city)) == city.strip().lower(),
                func.trim(MedicalInstitution.zip_code) == zip_code.strip(),
            )
            .order_by(MedicalInstitution.created_at)
        )
        target = normalize_name(name)
        for institution in self._session.execute(stmt).scalars():
            if normalize_name(institution.name) == target:
                return _to_institution_record(institution)
        return None

    def get_institution(self, institution_id: str) -> InstitutionRecord | None:
        institution = self._get(MedicalInstitution, institution_id)
        return _to_institution_record(institution) if institution is not None else None

    def get_profile(self, institution_id: str) -> ProfileFields | None:
        profile = self._get_profile_row(institution_id)
        return _to_profile_fields(profile) if profile is not None else None

    def find_contact(
        self,
        institution_id: str,
        identity: ContactIdentity,
    ) -> ContactRecord | None:
        parsed_id = _parse_uuid(institution_id)
        if parsed_id is None:
            return None

        stmt = select(ContactPerson).where(ContactPerson.institution_id == parsed_id)
        if identity.email:
            stmt = stmt.where(func.lower(ContactPerson.email) == identity.email.strip().lower())
        else:
            for column, value in (
                (ContactPerson.first_name, identity.first_name),
                (ContactPerson.last_name, identity.last_name),
                (ContactPerson.phone, identity.phone),
            ):
                stmt = stmt.where(column == value if value else column.is_(None))

        contact = self._session.execute(stmt.order_by(ContactPerson.created_at)).scalars().first()
        return _to_contact_record(contact) if contact is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_institution(self, fields: InstitutionFields) -> str:
        institution = MedicalInstitution(
            name=fields.name,
            type=fields.type,
            street=fields.street,
            city=fields.city,
            state=fields.state,
            zip_code=fields.zip_code,
            country=fields.country,
            accounting_number=fields.accounting_number,
            external_id=fields.external_id,
            assigned_user_id=fields.assigned_user_id,
            tags=list(fields.tags),
            is_active=True,
            data_source=fields.data_source,
        )
        self._session.add(institution)
        self._flush("create institution")
        return str(institution.id)

    def update_institution(self, institution_id: str, changes: Mapping[str, Any]) -> None:
        institution = self._get(MedicalInstitution, institution_id)
        if institution is None:
            raise InstitutionPersistenceError(f"Institution {institution_id} does not exist.")
        _apply_changes(institution, changes, _INSTITUTION_ATTRIBUTES)
        self._flush("update institution")

    def create_or_update_profile(self, institution_id: str, fields: ProfileFields) -> None:
        profile = self._get_profile_row(institution_id)
        if profile is None:
            parsed_id = _parse_uuid(institution_id)
            if parsed_id is None:
                raise InstitutionPersistenceError(f"Institution {institution_id} does not exist.")
            profile = MedicalProfile(institution_id=parsed_id)
            self._session.add(profile)

        profile.bed_capacity = fields.bed_capacity
        profile.surgical_rooms = fields.surgical_rooms
        profile.specialties = list(fields.specialties)
        profile.departments = list(fields.departments)
        profile.equipment_types = list(fields.equipment_types)
        profile.certifications = list(fields.certifications)
        profile.compliance_status = fields.compliance_status or ComplianceStatus.PENDING_REVIEW
        profile.last_audit_date = fields.last_audit_date
        profile.compliance_expiration_date = fields.compliance_expiration_date
        profile.compliance_notes = fields.compliance_notes
        self._flush("save profile")

    def create_contact(self, institution_id: str, fields: ContactFields) -> str:
        parsed_id = _parse_uuid(institution_id)
        if parsed_id is None:
            raise InstitutionPersistenceError(f"Institution {institution_id} does not exist.")

        contact = ContactPerson(
            institution_id=parsed_id,
            first_name=fields.first_name or DEFAULT_CONTACT_FIRST_NAME,
            last_name=fields.last_name or DEFAULT_CONTACT_LAST_NAME,
            email=fields.email,
            phone=fields.phone,
            title=fields.title,
            department=fields.department,
            is_primary=bool(fields.is_primary),
            is_locked=False,
            data_source=IMPORT_DATA_SOURCE,
        )
        self._session.add(contact)
        self._flush("create contact")
        return str(contact.id)

    def update_contact(self, contact_id: str, changes: Mapping[str, Any]) -> None:
        contact = self._get(ContactPerson, contact_id)
        if contact is None:
            raise InstitutionPersistenceError(f"Contact {contact_id} does not exist.")
        _apply_changes(contact, changes, _CONTACT_ATTRIBUTES)
        self._flush("update contact")

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def commit(self) -> None:
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise InstitutionPersistenceError("Failed to commit institution changes.") from exc

    def rollback(self) -> None:
        self._session.rollback()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, model: type, record_id: str) -> Any:
        parsed_id = _parse_uuid(record_id)
        if parsed_id is None:
            return None
        return self._session.get(model, parsed_id)

    def _get_profile_row(self, institution_id: str) -> MedicalProfile | None:
        parsed_id = _parse_uuid(institution_id)
        if parsed_id is None:
            return None
        stmt = select(MedicalProfile).where(MedicalProfile.institution_id == parsed_id)
        return self._session.execute(stmt).scalars().first()

    def _flush(self, action: str) -> None:
        try:
            self._session.flush()
        except SQLAlchemyError as exc:
            logger.error("Institution repository write failed action=%s error=%s", action, exc)
            raise InstitutionPersistenceError(f"Failed to {action}: {exc.__class__.__name__}") from exc


def _parse_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _apply_changes(target: Any, changes: Mapping[str, Any], allowed: frozenset[str]) -> None:
    for attribute, value in changes.items():
        if attribute not in allowed:
            raise ValueError(f"Unsupported attribute for update: {attribute}")
        setattr(target, attribute, list(value) if isinstance(value, tuple) else value)


def _to_institution_record(institution: MedicalInstitution) -> InstitutionRecord:
    return InstitutionRecord(
        id=str(institution.id),
        name=institution.name,
        type=institution.type,
        street=institution.street,
        city=institution.city,
        state=institution.state,
        zip_code=institution.zip_code,
        country=institution.country,
        accounting_number=institution.accounting_number,
        external_id=institution.external_id,
        assigned_user_id=institution.assigned_user_id,
        tags=tuple(institution.tags or ()),
        is_active=institution.is_active,
        data_source=institution.data_source,
    )


def _to_profile_fields(profile: MedicalProfile) -> ProfileFields:
    return ProfileFields(
        bed_capacity=profile.bed_capacity,
        surgical_rooms=profile.surgical_rooms,
        specialties=tuple(profile.specialties or ()),
        departments=tuple(profile.departments or ()),
        equipment_types=tuple(profile.equipment_types or ()),
        certifications=tuple(profile.certifications or ()),
        compliance_status=profile.compliance_status,
        last_audit_date=profile.last_audit_date,
        compliance_expiration_date=profile.compliance_expiration_date,
        compliance_notes=profile.compliance_notes,
    )


def _to_contact_record(contact: ContactPerson) -> ContactRecord:
    return ContactRecord(
        id=str(contact.id),
        institution_id=str(contact.institution_id),
        first_name=contact.first_name,
        last_name=contact.last_name,
        email=contact.email,
        phone=contact.phone,
        title=contact.title,
        department=contact.department,
        is_primary=contact.is_primary,
        is_locked=contact.is_locked,
    )
