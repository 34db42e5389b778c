from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.institution_import import (
    ContactFields,
    ContactIdentity,
    ImportOptions,
    InstitutionFields,
    ProfileFields,
)
from app.repositories.base import InstitutionPersistenceError
from app.repositories.institution_repository import SQLAlchemyInstitutionRepository
from app.services.institution_import_service import InstitutionImportService
from db.models.contact_person import ContactPerson
from db.models.medical_institution import MedicalInstitution
from matching.engine import MatchingEngine


def _fields(**overrides) -> InstitutionFields:
    values = {
        "name": "General Hospital",
        "type": "hospital",
        "street": "123 Main",
        "city": "Healthcare City",
        "state": "CA",
        "zip_code": "90210",
        "country": "US",
    }
    values.update(overrides)
    return InstitutionFields(**values)


@pytest.fixture()
def repo(sqlite_session: Session) -> SQLAlchemyInstitutionRepository:
    return SQLAlchemyInstitutionRepository(sqlite_session)


def test_create_and_get_institution(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields(tags=("north", "teaching"), assigned_user_id="owner-1"))
    repo.commit()

    record = repo.get_institution(institution_id)

    assert record.name == "General Hospital"
    assert record.tags == ("north", "teaching")
    assert record.assigned_user_id == "owner-1"
    assert record.is_active is True
    assert record.data_source == "import"


def test_get_institution_with_unknown_or_malformed_id(repo: SQLAlchemyInstitutionRepository) -> None:
    assert repo.get_institution("not-a-uuid") is None
    assert repo.get_institution("00000000-0000-0000-0000-000000000000") is None


def test_find_by_accounting_number_is_case_insensitive(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields(accounting_number="Acc-77"))

    assert repo.find_institution_by_accounting_number(" acc-77 ").id == institution_id
    assert repo.find_institution_by_accounting_number("ACC-78") is None
    assert repo.find_institution_by_accounting_number("  ") is None


def test_duplicate_accounting_number_raises_persistence_error(repo: SQLAlchemyInstitutionRepository) -> None:
    repo.create_institution(_fields(accounting_number="ACC-1"))
    repo.commit()

    with pytest.raises(InstitutionPersistenceError):
        repo.create_institution(_fields(name="Other", accounting_number="ACC-1"))
    repo.rollback()

    assert repo.find_institution_by_accounting_number("ACC-1").name == "General Hospital"


def test_find_by_name_and_city_puts_exact_name_first(repo: SQLAlchemyInstitutionRepository) -> None:
    repo.create_institution(_fields(name="Riverside Clinic", street="9 River Rd"))
    exact_id = repo.create_institution(_fields(name="General Hospital"))
    repo.create_institution(_fields(name="General Hospital", city="Other Town"))

    candidates = repo.find_institutions_by_name_and_city("general hospital", " healthcare city ")

    assert [candidate.id for candidate in candidates][0] == exact_id
    assert {candidate.city for candidate in candidates} == {"Healthcare City"}
    assert len(candidates) == 2
    assert len(repo.find_institutions_by_name_and_city("x", "Healthcare City", limit=1)) == 1
    assert repo.find_institutions_by_name_and_city("General Hospital", "") == []


def test_find_exact_compares_normalized_names(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields(name="CHU General"))

    assert repo.find_institution_exact("general", "123 MAIN", "healthcare city", " 90210 ").id == institution_id
    assert repo.find_institution_exact("general", "123 Main", "Healthcare City", "90211") is None
    assert repo.find_institution_exact("Riverside", "123 Main", "Healthcare City", "90210") is None


def test_update_institution_applies_changes(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields())

    repo.update_institution(institution_id, {"street": "500 New Ave", "tags": ("a", "b")})

    record = repo.get_institution(institution_id)
    assert record.street == "500 New Ave"
    assert record.tags == ("a", "b")


def test_update_institution_rejects_unknown_attributes(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields())

    with pytest.raises(ValueError):
        repo.update_institution(institution_id, {"id": "other"})


def test_update_missing_institution_raises(repo: SQLAlchemyInstitutionRepository) -> None:
    with pytest.raises(InstitutionPersistenceError):
        repo.update_institution("00000000-0000-0000-0000-000000000000", {"name": "x"})


def test_profile_create_then_update(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields())
    assert repo.get_profile(institution_id) is None

    repo.create_or_update_profile(
        institution_id,
        ProfileFields(bed_capacity=10, specialties=("cardiology",), last_audit_date=date(2024, 1, 15)),
    )
    created = repo.get_profile(institution_id)
    repo.create_or_update_profile(institution_id, ProfileFields(bed_capacity=20, compliance_status="expired"))
    updated = repo.get_profile(institution_id)

    assert created.bed_capacity == 10
    assert created.specialties == ("cardiology",)
    assert created.compliance_status == "pending_review"
    assert created.last_audit_date == date(2024, 1, 15)
    assert updated.bed_capacity == 20
    assert updated.compliance_status == "expired"


def test_contacts_are_found_by_email_or_names_and_phone(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields())
    by_email_id = repo.create_contact(institution_id, ContactFields(first_name="Jo", email="Jo@General.org"))
    by_name_id = repo.create_contact(institution_id, ContactFields(first_name="Ann", last_name="Lee", phone="555"))

    assert repo.find_contact(institution_id, ContactIdentity(email="jo@general.org")).id == by_email_id
    assert (
        repo.find_contact(institution_id, ContactIdentity(first_name="Ann", last_name="Lee", phone="555")).id
        == by_name_id
    )
    assert repo.find_contact(institution_id, ContactIdentity(first_name="Ann", last_name="Lee")) is None
    assert repo.find_contact("not-a-uuid", ContactIdentity(email="jo@general.org")) is None


def test_contact_defaults_and_updates(repo: SQLAlchemyInstitutionRepository) -> None:
    institution_id = repo.create_institution(_fields())
    contact_id = repo.create_contact(institution_id, ContactFields(email="ops@general.org"))

    repo.update_contact(contact_id, {"title": "Director", "is_primary": True})
    contact = repo.find_contact(institution_id, ContactIdentity(email="ops@general.org"))

    assert (contact.first_name, contact.last_name) == ("Contact", "Imported")
    assert contact.title == "Director"
    assert contact.is_primary is True
    assert contact.is_locked is False

    with pytest.raises(ValueError):
        repo.update_contact(contact_id, {"institution_id": "other"})


def test_rollback_discards_uncommitted_writes(repo: SQLAlchemyInstitutionRepository, sqlite_session: Session) -> None:
    repo.create_institution(_fields(name="Kept"))
    repo.commit()
    repo.create_institution(_fields(name="Dropped"))
    repo.rollback()

    names = sqlite_session.execute(select(MedicalInstitution.name)).scalars().all()
    assert names == ["Kept"]


def test_import_end_to_end_on_sqlite(repo: SQLAlchemyInstitutionRepository, sqlite_session: Session) -> None:
    service = InstitutionImportService(repository=repo, matching_engine=MatchingEngine(repo))
    csv_text = "\n".join(
        [
            "name,type,street,city,state,zipCode,country,specialties,contactEmail,accountingNumber",
            "General Hospital,hospital,123 Main,Healthcare City,CA,90210,US,cardiology,ops@general.org,ACC-1",
            "Riverside Clinic,clinic,9 River Rd,Healthcare City,CA,90211,US,,,",
        ]
    )
    merge_text = "\n".join(
        [
            "name,type,street,city,state,zipCode,country,specialties,accountingNumber",
            "Gen. Hospital,hospital,123 Main,Healthcare City,CA,90210,US,oncology,acc-1",
        ]
    )

    first = service.import_records(csv_text)
    second = service.import_records(merge_text, ImportOptions(merge_duplicates=True))

    assert first.successful_imports == 2
    assert first.success is True
    assert second.duplicates_merged == 1
    assert second.outcomes[0].match_type == "accounting_number"
    assert len(sqlite_session.execute(select(MedicalInstitution)).scalars().all()) == 2
    merged_id = second.imported_record_refs[0]
    assert repo.get_profile(merged_id).specialties == ("cardiology", "oncology")
    assert len(sqlite_session.execute(select(ContactPerson)).scalars().all()) == 1
