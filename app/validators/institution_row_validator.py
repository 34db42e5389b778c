"""
app/validators/institution_row_validator.py

Row-level validation and type parsing for institution CSV imports.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Sequence

from app.domain.institution_import import (
    COMPLIANCE_STATUSES,
    INSTITUTION_TYPES,
    CanonicalRow,
    ContactFields,
    InstitutionImportRow,
    ProfileFields,
    ValidatedRow,
    ValidationIssue,
)
from app.mappers.field_mapper import CONTACT_FIELDS, PROFILE_FIELDS, REQUIRED_FIELDS

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d.%m.%Y",
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")

TRUE_VALUES = frozenset({"true", "yes", "oui", "1", "y"})
FALSE_VALUES = frozenset({"false", "no", "non", "0", "n"})


def split_list_value(value: str) -> tuple[str, ...]:
    """
    Split a comma-separated cell into trimmed, de-duplicated items.
    """

    items: list[str] = []
    seen: set[str] = set()
    for raw_item in value.split(","):
        item = raw_item.strip()
        if not item or item.lower() in seen:
            continue
        seen.add(item.lower())
        items.append(item)
    return tuple(items)


class InstitutionRowValidator:
    """
    Validates canonical rows and parses the valid ones into typed payloads.

    Every rule runs on every row, so one row can report several issues.
    """

    def validate(self, rows: Sequence[CanonicalRow]) -> list[ValidatedRow]:
        return [self.validate_row(row) for row in rows]

    def validate_row(self, row: CanonicalRow) -> ValidatedRow:
        issues: list[ValidationIssue] = []

        for field_name in REQUIRED_FIELDS:
            if not row.get(field_name):
                issues.append(ValidationIssue(field=field_name, message=f"{field_name} is required"))

        institution_type = row.get("type").lower()
        if institution_type and institution_type not in INSTITUTION_TYPES:
            allowed = ", ".join(sorted(INSTITUTION_TYPES))
            issues.append(
                ValidationIssue(
                    field="type",
                    message=f"Invalid institution type '{row.get('type')}'. Allowed values: {allowed}.",
                )
            )

        bed_capacity = self._parse_integer(row, "bedCapacity", issues)
        surgical_rooms = self._parse_integer(row, "surgicalRooms", issues)
        last_audit_date = self._parse_date(row, "lastAuditDate", issues)
        expiration_date = self._parse_date(row, "complianceExpirationDate", issues)

        email = row.get("contactEmail")
        if email and not EMAIL_PATTERN.match(email):
            issues.append(ValidationIssue(field="contactEmail", message="Invalid email format"))

        compliance_status = row.get("complianceStatus").lower()
        if compliance_status and compliance_status not in COMPLIANCE_STATUSES:
            allowed = ", ".join(sorted(COMPLIANCE_STATUSES))
            issues.append(
                ValidationIssue(
                    field="complianceStatus",
                    message=(
                        f"Invalid compliance status '{row.get('complianceStatus')}'. "
                        f"Allowed values: {allowed}."
                    ),
                )
            )

        is_primary = self._parse_boolean(row, "contactIsPrimary", issues)

        if issues:
            return ValidatedRow(row=row, issues=tuple(issues))

        profile = None
        if row.has_any(PROFILE_FIELDS):
            profile = ProfileFields(
                bed_capacity=bed_capacity,
                surgical_rooms=surgical_rooms,
                specialties=split_list_value(row.get("specialties")),
                departments=split_list_value(row.get("departments")),
                equipment_types=split_list_value(row.get("equipmentTypes")),
                certifications=split_list_value(row.get("certifications")),
                compliance_status=compliance_status or None,
                last_audit_date=last_audit_date,
                compliance_expiration_date=expiration_date,
                compliance_notes=row.get("complianceNotes") or None,
            )

        contact = None
        if row.has_any(CONTACT_FIELDS):
            contact = ContactFields(
                first_name=row.get("contactFirstName") or None,
                last_name=row.get("contactLastName") or None,
                email=email or None,
                phone=row.get("contactPhone") or None,
                title=row.get("contactTitle") or None,
                department=row.get("contactDepartment") or None,
                is_primary=is_primary,
            )

        record = InstitutionImportRow(
            name=row.get("name"),
            type=institution_type,
            street=row.get("street"),
            city=row.get("city"),
            state=row.get("state"),
            zip_code=row.get("zipCode"),
            country=row.get("country"),
            accounting_number=row.get("accountingNumber") or None,
            tags=split_list_value(row.get("tags")),
            profile=profile,
            contact=contact,
        )
        return ValidatedRow(row=row, record=record)

    @staticmethod
    def _parse_integer(
        row: CanonicalRow,
        field_name: str,
        issues: list[ValidationIssue],
    ) -> int | None:
        raw = row.get(field_name)
        if not raw:
            return None
        if not INTEGER_PATTERN.match(raw):
            issues.append(ValidationIssue(field=field_name, message=f"{field_name} must be an integer"))
            return None
        return int(raw)

    @staticmethod
    def _parse_date(
        row: CanonicalRow,
        field_name: str,
        issues: list[ValidationIssue],
    ) -> date | None:
        raw = row.get(field_name)
        if not raw:
            return None

        try:
            return date.fromisoformat(raw)
        except ValueError:
            pass

        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(raw, fmt).date()
            except ValueError:
                continue

        issues.append(ValidationIssue(field=field_name, message=f"{field_name} must be a valid date"))
        return None

    @staticmethod
    def _parse_boolean(
        row: CanonicalRow,
        field_name: str,
        issues: list[ValidationIssue],
    ) -> bool | None:
        raw = row.get(field_name).lower()
        if not raw:
            return None
        if raw in TRUE_VALUES:
            return True
        if raw in FALSE_VALUES:
            return False
        issues.append(ValidationIssue(field=field_name, message=f"{field_name} must be true or false"))
        return None
