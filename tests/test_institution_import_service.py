from __future__ import annotations

import pytest
from fakes import InMemoryInstitutionRepository, ScriptedReferenceLookup

from app.domain.institution_import import (
    ExternalRef,
    ImportOptions,
    MatchType,
    ProfileFields,
    RowStatus,
)
from app.parsers.csv_parser import CSVStructureError
from app.services.institution_import_service import CANCELLED_MESSAGE, InstitutionImportService
from matching.engine import MatchingEngine

HEADER = "name,type,street,city,state,zipCode,country"
GENERAL = "General Hospital,hospital,123 Main,Healthcare City,CA,90210,US"
RIVERSIDE = "Riverside Clinic,clinic,9 River Rd,Healthcare City,CA,90211,US"
TWO_ROWS = "\n".join([HEADER, GENERAL, RIVERSIDE])


@pytest.fixture()
def service(repository: InMemoryInstitutionRepository) -> InstitutionImportService:
    return InstitutionImportService(repository=repository)


def test_single_row_import_on_empty_store(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    result = service.import_records(HEADER + "\n" + GENERAL)

    assert result.total_rows == 1
    assert result.successful_imports == 1
    assert result.failed_imports == 0
    assert result.duplicates_found == 0
    assert result.success is True
    assert [institution.name for institution in repository.institutions] == ["General Hospital"]
    assert result.imported_record_refs == [repository.institutions[0].id]
    assert repository.institutions[0].data_source == "import"


def test_skipping_duplicates_on_reimport(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    options = ImportOptions(skip_duplicates=True)
    first = service.import_records(TWO_ROWS, options)
    second = service.import_records(TWO_ROWS, options)

    assert first.successful_imports == 2
    assert second.duplicates_found == 2
    assert second.duplicates_skipped == 2
    assert second.successful_imports == 0
    assert second.failed_imports == 0
    assert second.success is True
    assert len(repository.institutions) == 2
    assert {outcome.status for outcome in second.outcomes} == {RowStatus.SKIPPED}
    assert {outcome.match_type for outcome in second.outcomes} == {MatchType.EXACT_NAME_ADDRESS}


def test_merge_unions_list_fields_and_tags(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution(tags=("north",))
    repository.seed_profile(
        existing.id,
        ProfileFields(bed_capacity=100, specialties=("cardiology",), compliance_status="compliant"),
    )
    csv_text = "\n".join(
        [
            HEADER + ",specialties,tags,surgicalRooms",
            GENERAL + ',oncology,"north,teaching",6',
        ]
    )

    result = service.import_records(csv_text, ImportOptions(merge_duplicates=True))

    assert result.duplicates_found == 1
    assert result.duplicates_merged == 1
    assert result.successful_imports == 1
    assert result.imported_record_refs == [existing.id]
    profile = repository.get_profile(existing.id)
    assert profile.specialties == ("cardiology", "oncology")
    assert profile.bed_capacity == 100
    assert profile.surgical_rooms == 6
    assert profile.compliance_status == "compliant"
    assert repository.get_institution(existing.id).tags == ("north", "teaching")
    assert len(repository.institutions) == 1


def test_merge_fills_blanks_and_overwrites_address(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution(accounting_number="ACC-1", state="")
    csv_text = "\n".join(
        [
            HEADER + ",accountingNumber",
            "Renamed Hospital,medical_center,500 New Ave,Healthcare City,NV,90999,US,acc-1",
        ]
    )

    service.import_records(csv_text, ImportOptions(merge_duplicates=True, assigned_owner_id="owner-7"))

    merged = repository.get_institution(existing.id)
    assert merged.name == "General Hospital"
    assert merged.accounting_number == "ACC-1"
    assert merged.type == "medical_center"
    assert merged.street == "500 New Ave"
    assert merged.state == "NV"
    assert merged.zip_code == "90999"
    assert merged.assigned_user_id == "owner-7"


def test_merge_keeps_existing_owner(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution(assigned_user_id="owner-1")

    service.import_records(HEADER + "\n" + GENERAL, ImportOptions(merge_duplicates=True, assigned_owner_id="owner-2"))

    assert repository.get_institution(existing.id).assigned_user_id == "owner-1"


def test_duplicate_without_policy_is_a_row_failure(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution()

    result = service.import_records(TWO_ROWS)

    assert result.duplicates_found == 1
    assert result.successful_imports == 1
    assert result.failed_imports == 1
    assert result.success is False
    assert len(repository.institutions) == 2
    assert result.errors[0].row == 2
    assert existing.id in result.errors[0].message
    assert result.errors[0].message.endswith("; enable skip_duplicates or merge_duplicates")
    assert result.outcomes[0].status == RowStatus.FAILED
    assert result.outcomes[0].institution_ref == existing.id


def test_validate_only_writes_nothing(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    result = service.import_records(TWO_ROWS, ImportOptions(validate_only=True))

    assert result.successful_imports == 2
    assert result.success is True
    assert repository.institutions == []
    assert repository.writes == 0
    assert {outcome.status for outcome in result.outcomes} == {RowStatus.VALIDATED}


def test_invalid_rows_are_reported_and_others_imported(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    csv_text = "\n".join(
        [
            HEADER,
            ",hospital,1 Main,Lyon,ARA,69001,FR",
            RIVERSIDE,
            "Bad Type,pharmacy,2 Main,Lyon,ARA,69001,FR",
        ]
    )

    result = service.import_records(csv_text)

    assert result.total_rows == 3
    assert result.successful_imports == 1
    assert result.failed_imports == 2
    assert result.success is False
    assert [(error.row, error.field) for error in result.errors] == [(2, "name"), (4, "type")]
    assert result.errors[0].message == "name is required"
    assert [institution.name for institution in repository.institutions] == ["Riverside Clinic"]
    assert [outcome.status for outcome in result.outcomes] == [
        RowStatus.INVALID,
        RowStatus.CREATED,
        RowStatus.INVALID,
    ]


def test_later_rows_see_earlier_rows_of_same_run(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    result = service.import_records(
        "\n".join([HEADER, GENERAL, GENERAL]),
        ImportOptions(skip_duplicates=True),
    )

    assert result.successful_imports == 1
    assert result.duplicates_found == 1
    assert result.duplicates_skipped == 1
    assert len(repository.institutions) == 1


def test_persistence_failure_does_not_abort_batch(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    repository.fail_on_create.add("General Hospital")

    result = service.import_records(TWO_ROWS)

    assert result.successful_imports == 1
    assert result.failed_imports == 1
    assert result.success is False
    assert result.errors[0].row == 2
    assert "General Hospital" in result.errors[0].message
    assert [institution.name for institution in repository.institutions] == ["Riverside Clinic"]
    assert repository.rollbacks == 1


def test_owner_is_assigned_to_created_institutions(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    service.import_records(TWO_ROWS, ImportOptions(assigned_owner_id="owner-9"))

    assert {institution.assigned_user_id for institution in repository.institutions} == {"owner-9"}


def test_created_profile_defaults_to_pending_review_and_contact_names(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    csv_text = "\n".join([HEADER + ",bedCapacity,contactEmail", GENERAL + ",120,ops@general.org"])

    service.import_records(csv_text)

    institution = repository.institutions[0]
    assert repository.get_profile(institution.id).compliance_status == "pending_review"
    contact = repository.contacts_for(institution.id)[0]
    assert (contact.first_name, contact.last_name, contact.email) == ("Contact", "Imported", "ops@general.org")


def test_skip_adds_new_contact_to_existing_institution(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution()
    csv_text = "\n".join([HEADER + ",contactFirstName,contactEmail", GENERAL + ",Ann,ann@general.org"])

    result = service.import_records(csv_text, ImportOptions(skip_duplicates=True))

    assert result.duplicates_skipped == 1
    contacts = repository.contacts_for(existing.id)
    assert [(contact.first_name, contact.email) for contact in contacts] == [("Ann", "ann@general.org")]


def test_contact_update_prefers_more_complete_values(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution()
    repository.seed_contact(existing.id, first_name="Jo", last_name="Smith", email="jo@general.org", title="Director")
    csv_text = "\n".join(
        [
            HEADER + ",contactFirstName,contactEmail,contactTitle,contactPhone,contactIsPrimary",
            GENERAL + ",Joanna,JO@general.org,Dir,555-0100,yes",
        ]
    )

    service.import_records(csv_text, ImportOptions(merge_duplicates=True))

    contacts = repository.contacts_for(existing.id)
    assert len(contacts) == 1
    contact = contacts[0]
    assert contact.first_name == "Joanna"
    assert contact.last_name == "Smith"
    assert contact.title == "Director"
    assert contact.phone == "555-0100"
    assert contact.is_primary is True


def test_locked_contact_is_left_untouched(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution()
    locked = repository.seed_contact(existing.id, is_locked=True, first_name="Jo", email="jo@general.org")
    csv_text = "\n".join([HEADER + ",contactFirstName,contactEmail", GENERAL + ",Joanna,jo@general.org"])

    result = service.import_records(csv_text, ImportOptions(merge_duplicates=True))

    assert result.success is True
    assert repository.contacts_for(existing.id) == [locked]


def test_cancellation_reports_remaining_rows(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    polls: list[int] = []

    def cancel_after_first_row() -> bool:
        polls.append(1)
        return len(polls) > 1

    result = service.import_records(TWO_ROWS, ImportOptions(cancel_check=cancel_after_first_row))

    assert result.successful_imports == 1
    assert result.failed_imports == 1
    assert result.errors[0].row == 3
    assert result.errors[0].message == CANCELLED_MESSAGE
    assert len(repository.institutions) == 1


def test_failing_cancel_check_cancels_instead_of_raising(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    polls: list[int] = []

    def cancel_check() -> bool:
        polls.append(1)
        if len(polls) > 1:
            raise ConnectionError("cancellation store unreachable")
        return False

    result = service.import_records(TWO_ROWS, ImportOptions(cancel_check=cancel_check))

    assert result.successful_imports == 1
    assert result.failed_imports == 1
    assert result.success is False
    assert [outcome.status for outcome in result.outcomes] == [RowStatus.CREATED, RowStatus.FAILED]
    assert result.errors[0].row == 3
    assert result.errors[0].message == CANCELLED_MESSAGE
    assert len(polls) == 2
    assert len(repository.institutions) == 1


def test_template_has_header_and_example_row_that_validates(service: InstitutionImportService) -> None:
    template = service.generate_template()
    lines = template.split("\n")

    assert len(lines) == 2
    assert lines[0].startswith("name,type,street,city")
    assert '"cardiology,neurology"' in lines[1]

    result = service.import_records(template, ImportOptions(validate_only=True))
    assert result.errors == []
    assert result.successful_imports == 1


def test_validate_counts_store_and_in_file_duplicates(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    repository.seed_institution(name="Riverside Clinic", street="9 River Rd", zip_code="90211")
    csv_text = "\n".join([HEADER, GENERAL, GENERAL, RIVERSIDE, ",clinic,1 Main,Lyon,ARA,69001,FR"])

    summary = service.validate(csv_text)

    assert summary.total_rows == 4
    assert summary.valid_rows == 3
    assert summary.duplicates_found == 2
    assert [(error.row, error.field) for error in summary.errors] == [(5, "name")]
    assert len(repository.institutions) == 1
    assert repository.commits == 1


def test_empty_and_header_only_payloads(service: InstitutionImportService) -> None:
    for payload in ("", HEADER, HEADER + "\n\n"):
        result = service.import_records(payload)
        assert result.total_rows == 0
        assert result.success is True
        assert result.errors == []


def test_structural_failure_raises(service: InstitutionImportService) -> None:
    with pytest.raises(CSVStructureError):
        service.import_records(b"\xff\xfe,broken\n1,2\n")


def test_localized_headers_are_accepted(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    csv_text = "\n".join(
        [
            "Nom,Catégorie,Adresse,Ville,Région,Code Postal,Pays,Numéro comptable",
            "Clinique du Parc,clinic,3 rue du Parc,Lyon,ARA,69003,FR,FR-001",
        ]
    )

    result = service.import_records(csv_text)

    assert result.successful_imports == 1
    assert repository.institutions[0].accounting_number == "FR-001"
    assert repository.institutions[0].zip_code == "69003"


def test_external_reference_is_stored_on_create(repository: InMemoryInstitutionRepository) -> None:
    lookup = ScriptedReferenceLookup(by_name={"General Hospital": ExternalRef(external_id="ext-42")})
    service = InstitutionImportService(
        repository=repository,
        matching_engine=MatchingEngine(repository, reference_lookup=lookup),
    )

    service.import_records(HEADER + "\n" + GENERAL)

    assert repository.institutions[0].external_id == "ext-42"


def test_unreachable_reference_lookup_does_not_fail_import(repository: InMemoryInstitutionRepository) -> None:
    service = InstitutionImportService(
        repository=repository,
        matching_engine=MatchingEngine(repository, reference_lookup=ScriptedReferenceLookup(fail=True)),
    )

    result = service.import_records(TWO_ROWS)

    assert result.success is True
    assert result.successful_imports == 2


def test_skipped_contact_identity_by_name_and_phone(
    service: InstitutionImportService,
    repository: InMemoryInstitutionRepository,
) -> None:
    existing = repository.seed_institution()
    repository.seed_contact(existing.id, first_name="Ann", last_name="Lee", phone="555")
    csv_text = "\n".join(
        [
            HEADER + ",contactFirstName,contactLastName,contactPhone,contactTitle",
            GENERAL + ",Ann,Lee,555,Head Nurse",
        ]
    )

    service.import_records(csv_text, ImportOptions(skip_duplicates=True))

    contacts = repository.contacts_for(existing.id)
    assert len(contacts) == 1
    assert contacts[0].title == "Head Nurse"
