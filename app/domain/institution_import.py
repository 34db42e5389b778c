"""
app/domain/institution_import.py

Domain models shared by the institution CSV import and matching flow.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType


class InstitutionType:
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    MEDICAL_CENTER = "medical_center"
    SPECIALTY_CLINIC = "specialty_clinic"


class ComplianceStatus:
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    PENDING_REVIEW = "pending_review"
    EXPIRED = "expired"


class MatchType:
    ACCOUNTING_NUMBER = "accounting_number"
    EXACT_NAME_ADDRESS = "exact_name_address"
    FUZZY_NAME_CITY = "fuzzy_name_city"
    NO_MATCH = "no_match"


class RowStatus:
    CREATED = "created"
    MERGED = "merged"
    SKIPPED = "skipped"
    INVALID = "invalid"
    FAILED = "failed"
    VALIDATED = "validated"


INSTITUTION_TYPES = frozenset(
    {
        InstitutionType.HOSPITAL,
        InstitutionType.CLINIC,
        InstitutionType.MEDICAL_CENTER,
        InstitutionType.SPECIALTY_CLINIC,
    }
)

COMPLIANCE_STATUSES = frozenset(
    {
        ComplianceStatus.COMPLIANT,
        ComplianceStatus.NON_COMPLIANT,
        ComplianceStatus.PENDING_REVIEW,
        ComplianceStatus.EXPIRED,
    }
)

IMPORT_DATA_SOURCE = "import"


# ---------------------------------------------------------------------------
# Parsing and validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CanonicalRow:
    """
    One parsed CSV line keyed by canonical field name.

    ``row_number`` is the physical line number in the file (header is line 1).
    Absent and empty cells are both reported as an empty string.
    """

    row_number: int
    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, field_name: str) -> str:
        return self.values.get(field_name, "")

    def has_any(self, field_names: Iterable[str]) -> bool:
        return any(self.get(name) for name in field_names)


@dataclass(frozen=True)
class ValidationIssue:
    message: str
    field: str | None = None


@dataclass(frozen=True)
class ProfileFields:
    """
    Medical profile values carried by one row or stored for one institution.
    """

    bed_capacity: int | None = None
    surgical_rooms: int | None = None
    specialties: tuple[str, ...] = ()
    departments: tuple[str, ...] = ()
    equipment_types: tuple[str, ...] = ()
    certifications: tuple[str, ...] = ()
    compliance_status: str | None = None
    last_audit_date: date | None = None
    compliance_expiration_date: date | None = None
    compliance_notes: str | None = None


@dataclass(frozen=True)
class ContactFields:
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    title: str | None = None
    department: str | None = None
    is_primary: bool | None = None


@dataclass(frozen=True)
class InstitutionImportRow:
    """
    Typed institution payload produced from a row without validation issues.
    """

    name: str
    type: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    accounting_number: str | None = None
    tags: tuple[str, ...] = ()
    profile: ProfileFields | None = None
    contact: ContactFields | None = None


@dataclass(frozen=True)
class ValidatedRow:
    row: CanonicalRow
    issues: tuple[ValidationIssue, ...] = ()
    record: InstitutionImportRow | None = None

    @property
    def row_number(self) -> int:
        return self.row.row_number

    @property
    def is_valid(self) -> bool:
        return not self.issues and self.record is not None


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddressInput:
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class MatchInput:
    """
    Identifying attributes used to look an institution up in the store.
    """

    name: str
    accounting_number: str | None = None
    address: AddressInput | None = None

    @property
    def street(self) -> str | None:
        return self.address.street if self.address else None

    @property
    def city(self) -> str | None:
        return self.address.city if self.address else None

    @property
    def zip_code(self) -> str | None:
        return self.address.zip_code if self.address else None


@dataclass(frozen=True)
class ExternalRef:
    """
    Identifier resolved by the external reference lookup service.
    """

    external_id: str
    name: str | None = None
    accounting_number: str | None = None
    city: str | None = None


@dataclass(frozen=True)
class MatchDetails:
    reason: str
    name_similarity: float | None = None
    city_match: bool | None = None
    address_match: bool | None = None


@dataclass(frozen=True)
class MatchResult:
    """
    Scored match-or-no-match decision for one MatchInput.
    """

    matched: bool
    match_type: str
    confidence: int
    details: MatchDetails
    institution_ref: str | None = None
    suggestions: tuple[str, ...] = ()
    external_ref: ExternalRef | None = None


# ---------------------------------------------------------------------------
# Store snapshots and write payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InstitutionFields:
    name: str
    type: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    accounting_number: str | None = None
    external_id: str | None = None
    assigned_user_id: str | None = None
    tags: tuple[str, ...] = ()
    data_source: str = IMPORT_DATA_SOURCE


@dataclass(frozen=True)
class InstitutionRecord:
    """
    Read-only snapshot of a stored institution.
    """

    id: str
    name: str
    type: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    accounting_number: str | None = None
    external_id: str | None = None
    assigned_user_id: str | None = None
    tags: tuple[str, ...] = ()
    is_active: bool = True
    data_source: str | None = None


@dataclass(frozen=True)
class ContactIdentity:
    """
    Lookup key for a contact: email when known, else names plus phone.
    """

    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None

    @classmethod
    def from_fields(cls, contact: ContactFields) -> ContactIdentity:
        if contact.email:
            return cls(email=contact.email.strip().lower())
        return cls(
            first_name=contact.first_name,
            last_name=contact.last_name,
            phone=contact.phone,
        )


@dataclass(frozen=True)
class ContactRecord:
    id: str
    institution_id: str
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    title: str | None = None
    department: str | None = None
    is_primary: bool = False
    is_locked: bool = False


# ---------------------------------------------------------------------------
# Import options and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportOptions:
    """
    Caller-controlled import policy.

    ``cancel_check`` is polled once before each row; once it returns True the
    remaining rows are reported as failed instead of being processed.
    """

    validate_only: bool = False
    skip_duplicates: bool = False
    merge_duplicates: bool = False
    assigned_owner_id: str | None = None
    cancel_check: Callable[[], bool] | None = None


@dataclass(frozen=True)
class ImportRowError:
    row: int
    message: str
    field: str | None = None


@dataclass(frozen=True)
class RowOutcome:
    row: int
    status: str
    institution_ref: str | None = None
    match_type: str | None = None
    confidence: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class ImportResult:
    """
    Aggregate result for one import run.

    Skipped duplicates count toward neither ``successful_imports`` nor
    ``failed_imports``.
    """

    total_rows: int
    successful_imports: int
    failed_imports: int
    duplicates_found: int
    duplicates_merged: int
    duplicates_skipped: int
    imported_record_refs: list[str] = field(default_factory=list)
    errors: list[ImportRowError] = field(default_factory=list)
    outcomes: list[RowOutcome] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class ValidationSummary:
    total_rows: int
    valid_rows: int
    duplicates_found: int
    errors: list[ImportRowError] = field(default_factory=list)
