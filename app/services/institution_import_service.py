"""
app/services/institution_import_service.py

Service layer for institution CSV import: parse, validate, match, then
create, merge or skip each row through the institution repository.

Rows are processed strictly in file order, one at a time, so every match
decision sees the writes of all earlier rows in the same run. Each row is
committed on its own; a failing row is rolled back and reported without
affecting rows already committed.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import replace
from typing import Any

from sqlalchemy.orm import Session

from app.config import (
    get_external_http_settings,
    get_institution_import_settings,
    get_reference_lookup_settings,
)
from app.connectors.reference_lookup_connector import ReferenceLookupConnector
from app.domain.institution_import import (
    IMPORT_DATA_SOURCE,
    AddressInput,
    ComplianceStatus,
    ContactFields,
    ContactIdentity,
    ImportOptions,
    ImportResult,
    ImportRowError,
    InstitutionFields,
    InstitutionImportRow,
    MatchInput,
    MatchResult,
    ProfileFields,
    RowOutcome,
    RowStatus,
    ValidatedRow,
    ValidationSummary,
)
from app.logging_utils import log_event
from app.mappers.field_mapper import CANONICAL_FIELDS
from app.parsers.csv_parser import InstitutionCSVParser
from app.repositories.base import InstitutionPersistenceError, InstitutionRepository
from app.repositories.institution_repository import (
    DEFAULT_CONTACT_FIRST_NAME,
    DEFAULT_CONTACT_LAST_NAME,
    SQLAlchemyInstitutionRepository,
)
from app.validators.institution_row_validator import InstitutionRowValidator
from matching.engine import MatchingEngine
from matching.normalizer import normalize_name, normalize_text
from matching.strategies import build_default_strategies

logger = logging.getLogger(__name__)

TEMPLATE_EXAMPLE_ROW: dict[str, str] = {
    "name": "General Hospital",
    "type": "hospital",
    "street": "123 Medical Center Dr",
    "city": "Healthcare City",
    "state": "CA",
    "zipCode": "90210",
    "country": "US",
    "accountingNumber": "ACC-0001",
    "bedCapacity": "150",
    "surgicalRooms": "8",
    "specialties": "cardiology,neurology",
    "departments": "emergency,icu",
    "equipmentTypes": "mri,ct_scan",
    "certifications": "jcaho,iso_9001",
    "complianceStatus": "compliant",
    "lastAuditDate": "2024-01-15",
    "complianceExpirationDate": "2025-01-15",
    "complianceNotes": "All requirements met",
    "tags": "cardiology,emergency",
    "contactFirstName": "John",
    "contactLastName": "Doe",
    "contactEmail": "john.doe@hospital.com",
    "contactPhone": "+1234567890",
    "contactTitle": "Chief Medical Officer",
    "contactDepartment": "Administration",
    "contactIsPrimary": "true",
}

CANCELLED_MESSAGE = "Import cancelled before this row was processed"


def build_csv_template() -> str:
    """Header row plus one example row; needs no repository."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CANONICAL_FIELDS)
    writer.writerow([TEMPLATE_EXAMPLE_ROW.get(field_name, "") for field_name in CANONICAL_FIELDS])
    return buffer.getvalue().rstrip("\n")


# Institution attributes filled from an incoming row only while still empty.
_IDENTITY_ATTRIBUTES = ("name", "accounting_number")
# Institution attributes replaced by a non-empty incoming value.
_OVERWRITE_ATTRIBUTES = ("type", "street", "city", "state", "zip_code", "country")
_CONTACT_TEXT_ATTRIBUTES = ("first_name", "last_name", "email", "phone", "title", "department")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DuplicateInstitutionError(RuntimeError):
    """
    Raised for a matched row when neither skipping nor merging is enabled.
    """

    def __init__(self, match: MatchResult) -> None:
        super().__init__(
            f"Duplicate of existing institution {match.institution_ref} "
            f"({match.match_type}, confidence {match.confidence}); "
            "enable skip_duplicates or merge_duplicates"
        )
        self.match = match


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class InstitutionImportService:
    """
    Coordinates CSV parsing, validation, matching and persistence of institutions.
    """

    def __init__(
        self,
        *,
        repository: InstitutionRepository,
        matching_engine: MatchingEngine | None = None,
        parser: InstitutionCSVParser | None = None,
        validator: InstitutionRowValidator | None = None,
        log_validation_errors: bool = True,
    ) -> None:
        self._repository = repository
        self._matching_engine = matching_engine or MatchingEngine(repository)
        self._parser = parser or InstitutionCSVParser()
        self._validator = validator or InstitutionRowValidator()
        self._log_validation_errors = log_validation_errors

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    def generate_template(self) -> str:
        """
        Return CSV text with the header row and one example row.
        """

        return build_csv_template()

    def validate(self, csv_text: str | bytes) -> ValidationSummary:
        """
        Dry run: validate every row and count likely duplicates without writing.

        A valid row counts as a duplicate when it repeats the name and address
        of an earlier row in the same file, or when it matches a stored
        institution.
        """

        validated_rows = self._validator.validate(self._parser.parse(csv_text))
        errors = self._collect_validation_errors(validated_rows)

        duplicates_found = 0
        seen_keys: set[tuple[str, str, str, str]] = set()
        valid_rows = [validated for validated in validated_rows if validated.is_valid]
        for validated in valid_rows:
            record = validated.record
            key = (
                normalize_name(record.name),
                normalize_text(record.street),
                normalize_text(record.city),
                record.zip_code.strip(),
            )
            if key in seen_keys:
                duplicates_found += 1
                continue
            seen_keys.add(key)

            try:
                match = self._matching_engine.find_best_match(self._build_match_input(record))
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Duplicate check failed during validation row=%s error=%s",
                    validated.row_number,
                    exc,
                )
                errors.append(
                    ImportRowError(
                        row=validated.row_number,
                        message=f"Could not check for existing institutions: {exc}",
                    )
                )
                continue
            if match.matched:
                duplicates_found += 1

        errors.sort(key=lambda error: error.row)
        return ValidationSummary(
            total_rows=len(validated_rows),
            valid_rows=len(valid_rows),
            duplicates_found=duplicates_found,
            errors=errors,
        )

    def import_records(
        self,
        csv_text: str | bytes,
        options: ImportOptions | None = None,
    ) -> ImportResult:
        """
        Import every row of a CSV payload.

        Parse and validation run once for the whole file. In validate-only mode
        the call stops there. Otherwise each valid row is matched against the
        store and created, merged or skipped according to ``options``.
        Structural parse failures raise ``CSVStructureError``; everything else
        is reported per row.
        """

        options = options or ImportOptions()
        validated_rows = self._validator.validate(self._parser.parse(csv_text))
        errors = self._collect_validation_errors(validated_rows)
        outcomes = [
            RowOutcome(row=validated.row_number, status=RowStatus.INVALID)
            for validated in validated_rows
            if not validated.is_valid
        ]
        valid_rows = [validated for validated in validated_rows if validated.is_valid]

        if options.validate_only:
            outcomes.extend(
                RowOutcome(row=validated.row_number, status=RowStatus.VALIDATED)
                for validated in valid_rows
            )
            return self._build_result(
                total_rows=len(validated_rows),
                successful_imports=len(valid_rows),
                invalid_rows=len(validated_rows) - len(valid_rows),
                errors=errors,
                outcomes=outcomes,
            )

        duplicates_found = 0
        cancelled = False
        for validated in valid_rows:
            row_number = validated.row_number
            if not cancelled and self._cancel_requested(options, row_number):
                cancelled = True
                logger.warning("Institution import cancelled before row=%s", row_number)
            if cancelled:
                errors.append(ImportRowError(row=row_number, message=CANCELLED_MESSAGE))
                outcomes.append(RowOutcome(row=row_number, status=RowStatus.FAILED, message=CANCELLED_MESSAGE))
                continue

            match: MatchResult | None = None
            try:
                match = self._matching_engine.find_best_match(self._build_match_input(validated.record))
                if match.matched:
                    duplicates_found += 1
                outcome = self._apply_decision(row_number, validated.record, match, options)
                self._repository.commit()
            except DuplicateInstitutionError as exc:
                self._repository.rollback()
                logger.info("Rejected duplicate institution row=%s %s", row_number, exc)
                outcome = self._failed_outcome(row_number, str(exc), match)
            except InstitutionPersistenceError as exc:
                self._repository.rollback()
                logger.error("Institution import row failed row=%s error=%s", row_number, exc)
                outcome = self._failed_outcome(row_number, str(exc), match)
            except Exception as exc:  # noqa: BLE001
                self._repository.rollback()
                logger.exception("Unexpected error importing institution row=%s", row_number)
                outcome = self._failed_outcome(row_number, f"Unexpected: {exc}", match)

            if outcome.status == RowStatus.FAILED:
                errors.append(ImportRowError(row=row_number, message=outcome.message or "Import failed"))
            outcomes.append(outcome)

        return self._build_result(
            total_rows=len(validated_rows),
            successful_imports=sum(
                1 for outcome in outcomes if outcome.status in (RowStatus.CREATED, RowStatus.MERGED)
            ),
            invalid_rows=len(validated_rows) - len(valid_rows),
            errors=errors,
            outcomes=outcomes,
            duplicates_found=duplicates_found,
        )

    # ------------------------------------------------------------------
    # Row decisions
    # ------------------------------------------------------------------

    @staticmethod
    def _cancel_requested(options: ImportOptions, row_number: int) -> bool:
        if options.cancel_check is None:
            return False
        try:
            return bool(options.cancel_check())
        except Exception:  # noqa: BLE001
            # A broken cancellation signal stops the batch at this row boundary.
            logger.exception("Cancellation check failed before row=%s", row_number)
            return True

    def _apply_decision(
        self,
        row_number: int,
        record: InstitutionImportRow,
        match: MatchResult,
        options: ImportOptions,
    ) -> RowOutcome:
        if not match.matched or match.institution_ref is None:
            institution_id = self._create_institution(record, match, options)
            return RowOutcome(row=row_number, status=RowStatus.CREATED, institution_ref=institution_id)

        if options.merge_duplicates:
            self._merge_institution(match.institution_ref, record, match, options)
            status = RowStatus.MERGED
        elif options.skip_duplicates:
            if record.contact is not None:
                self._upsert_contact(match.institution_ref, record.contact)
            status = RowStatus.SKIPPED
        else:
            raise DuplicateInstitutionError(match)

        logger.info(
            "Duplicate institution handled row=%s status=%s institution_ref=%s match_type=%s confidence=%s",
            row_number,
            status,
            match.institution_ref,
            match.match_type,
            match.confidence,
        )
        return RowOutcome(
            row=row_number,
            status=status,
            institution_ref=match.institution_ref,
            match_type=match.match_type,
            confidence=match.confidence,
        )

    def _create_institution(
        self,
        record: InstitutionImportRow,
        match: MatchResult,
        options: ImportOptions,
    ) -> str:
        institution_id = self._repository.create_institution(
            InstitutionFields(
                name=record.name,
                type=record.type,
                street=record.street,
                city=record.city,
                state=record.state,
                zip_code=record.zip_code,
                country=record.country,
                accounting_number=record.accounting_number,
                external_id=match.external_ref.external_id if match.external_ref else None,
                assigned_user_id=options.assigned_owner_id,
                tags=record.tags,
                data_source=IMPORT_DATA_SOURCE,
            )
        )
        if record.profile is not None:
            profile = record.profile
            if profile.compliance_status is None:
                profile = replace(profile, compliance_status=ComplianceStatus.PENDING_REVIEW)
            self._repository.create_or_update_profile(institution_id, profile)
        if record.contact is not None:
            self._repository.create_contact(institution_id, _with_default_names(record.contact))
        return institution_id

    def _merge_institution(
        self,
        institution_id: str,
        record: InstitutionImportRow,
        match: MatchResult,
        options: ImportOptions,
    ) -> None:
        existing = self._repository.get_institution(institution_id)
        if existing is None:
            raise InstitutionPersistenceError(f"Matched institution {institution_id} no longer exists.")

        changes: dict[str, Any] = {}
        for attribute in _IDENTITY_ATTRIBUTES:
            incoming = getattr(record, attribute)
            if incoming and not getattr(existing, attribute):
                changes[attribute] = incoming
        for attribute in _OVERWRITE_ATTRIBUTES:
            incoming = getattr(record, attribute)
            if incoming and normalize_text(incoming) != normalize_text(getattr(existing, attribute)):
                changes[attribute] = incoming

        tags = _union(existing.tags, record.tags)
        if tags != existing.tags:
            changes["tags"] = tags
        if options.assigned_owner_id and not existing.assigned_user_id:
            changes["assigned_user_id"] = options.assigned_owner_id
        if match.external_ref is not None and not existing.external_id:
            changes["external_id"] = match.external_ref.external_id

        if changes:
            self._repository.update_institution(institution_id, changes)

        if record.profile is not None:
            self._repository.create_or_update_profile(
                institution_id,
                _merge_profile(self._repository.get_profile(institution_id), record.profile),
            )
        if record.contact is not None:
            self._upsert_contact(institution_id, record.contact)

    def _upsert_contact(self, institution_id: str, contact: ContactFields) -> None:
        named_contact = _with_default_names(contact)
        existing = self._repository.find_contact(institution_id, ContactIdentity.from_fields(named_contact))
        if existing is None:
            self._repository.create_contact(institution_id, named_contact)
            return

        if existing.is_locked:
            logger.info(
                "Skipping update of locked contact institution_ref=%s contact_ref=%s",
                institution_id,
                existing.id,
            )
            return

        changes: dict[str, Any] = {}
        for attribute in _CONTACT_TEXT_ATTRIBUTES:
            incoming = getattr(contact, attribute)
            if _prefer_incoming(getattr(existing, attribute), incoming):
                changes[attribute] = incoming
        if contact.is_primary is not None and contact.is_primary != existing.is_primary:
            changes["is_primary"] = contact.is_primary

        if changes:
            self._repository.update_contact(existing.id, changes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _build_match_input(record: InstitutionImportRow) -> MatchInput:
        return MatchInput(
            name=record.name,
            accounting_number=record.accounting_number,
            address=AddressInput(
                street=record.street,
                city=record.city,
                state=record.state,
                zip_code=record.zip_code,
                country=record.country,
            ),
        )

    @staticmethod
    def _failed_outcome(row_number: int, message: str, match: MatchResult | None) -> RowOutcome:
        return RowOutcome(
            row=row_number,
            status=RowStatus.FAILED,
            institution_ref=match.institution_ref if match is not None else None,
            match_type=match.match_type if match is not None else None,
            confidence=match.confidence if match is not None else None,
            message=message,
        )

    def _collect_validation_errors(self, validated_rows: list[ValidatedRow]) -> list[ImportRowError]:
        errors: list[ImportRowError] = []
        for validated in validated_rows:
            for issue in validated.issues:
                if self._log_validation_errors:
                    logger.warning(
                        "Institution CSV validation error row=%s field=%s message=%s",
                        validated.row_number,
                        issue.field,
                        issue.message,
                    )
                errors.append(ImportRowError(row=validated.row_number, field=issue.field, message=issue.message))
        return errors

    @staticmethod
    def _build_result(
        *,
        total_rows: int,
        successful_imports: int,
        invalid_rows: int,
        errors: list[ImportRowError],
        outcomes: list[RowOutcome],
        duplicates_found: int = 0,
    ) -> ImportResult:
        outcomes = sorted(outcomes, key=lambda outcome: outcome.row)
        errors = sorted(errors, key=lambda error: error.row)
        failed_rows = sum(1 for outcome in outcomes if outcome.status == RowStatus.FAILED)
        result = ImportResult(
            total_rows=total_rows,
            successful_imports=successful_imports,
            failed_imports=invalid_rows + failed_rows,
            duplicates_found=duplicates_found,
            duplicates_merged=sum(1 for outcome in outcomes if outcome.status == RowStatus.MERGED),
            duplicates_skipped=sum(1 for outcome in outcomes if outcome.status == RowStatus.SKIPPED),
            imported_record_refs=[
                outcome.institution_ref
                for outcome in outcomes
                if outcome.status in (RowStatus.CREATED, RowStatus.MERGED) and outcome.institution_ref
            ],
            errors=errors,
            outcomes=outcomes,
            success=not errors,
        )
        log_event(
            logger,
            logging.INFO,
            "institution_import_completed",
            total_rows=result.total_rows,
            successful_imports=result.successful_imports,
            failed_imports=result.failed_imports,
            duplicates_found=result.duplicates_found,
            duplicates_merged=result.duplicates_merged,
            duplicates_skipped=result.duplicates_skipped,
            success=result.success,
        )
        return result


# ---------------------------------------------------------------------------
# Merge helpers
# ---------------------------------------------------------------------------


def _union(existing: tuple[str, ...], incoming: tuple[str, ...]) -> tuple[str, ...]:
    """Keep existing items in order, then append new ones (case-insensitive)."""
    merged = list(existing)
    seen = {item.lower() for item in existing}
    for item in incoming:
        if item.lower() not in seen:
            seen.add(item.lower())
            merged.append(item)
    return tuple(merged)


def _merge_profile(existing: ProfileFields | None, incoming: ProfileFields) -> ProfileFields:
    if existing is None:
        if incoming.compliance_status is None:
            return replace(incoming, compliance_status=ComplianceStatus.PENDING_REVIEW)
        return incoming

    return ProfileFields(
        bed_capacity=incoming.bed_capacity if incoming.bed_capacity is not None else existing.bed_capacity,
        surgical_rooms=(
            incoming.surgical_rooms if incoming.surgical_rooms is not None else existing.surgical_rooms
        ),
        specialties=_union(existing.specialties, incoming.specialties),
        departments=_union(existing.departments, incoming.departments),
        equipment_types=_union(existing.equipment_types, incoming.equipment_types),
        certifications=_union(existing.certifications, incoming.certifications),
        compliance_status=incoming.compliance_status or existing.compliance_status,
        last_audit_date=incoming.last_audit_date or existing.last_audit_date,
        compliance_expiration_date=(
            incoming.compliance_expiration_date or existing.compliance_expiration_date
        ),
        compliance_notes=incoming.compliance_notes or existing.compliance_notes,
    )


def _prefer_incoming(existing: str | None, incoming: str | None) -> bool:
    """The more complete value wins: fill blanks, or replace with a longer value."""
    if not incoming:
        return False
    if not existing:
        return True
    return len(incoming) > len(existing)


def _with_default_names(contact: ContactFields) -> ContactFields:
    return replace(
        contact,
        first_name=contact.first_name or DEFAULT_CONTACT_FIRST_NAME,
        last_name=contact.last_name or DEFAULT_CONTACT_LAST_NAME,
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_institution_import_service(db: Session) -> InstitutionImportService:
    """
    Build an import service bound to one database session with env-driven settings.
    """

    settings = get_institution_import_settings()
    repository = SQLAlchemyInstitutionRepository(db)

    reference_settings = get_reference_lookup_settings()
    reference_lookup = None
    if reference_settings.enabled and reference_settings.base_url:
        reference_lookup = ReferenceLookupConnector(
            settings=reference_settings,
            http_settings=get_external_http_settings(),
        )

    engine = MatchingEngine(
        repository,
        strategies=build_default_strategies(
            match_threshold=settings.fuzzy_match_threshold,
            suggestion_threshold=settings.fuzzy_suggestion_threshold,
            confidence_cap=settings.fuzzy_confidence_cap,
            max_suggestions=settings.max_suggestions,
            candidate_limit=settings.city_candidate_limit,
        ),
        reference_lookup=reference_lookup,
    )
    return InstitutionImportService(
        repository=repository,
        matching_engine=engine,
        log_validation_errors=settings.log_validation_errors,
    )
