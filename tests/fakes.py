"""
tests/fakes.py

In-memory stand-ins for the institution repository and reference lookup.
"""

from __future__ import annotations

import itertools
from dataclasses import replace
from typing import Any, Mapping

from app.connectors.base import ConnectorRequestError
from app.domain.institution_import import (
    ContactFields,
    ContactIdentity,
    ContactRecord,
    ExternalRef,
    InstitutionFields,
    InstitutionRecord,
    ProfileFields,
)
from app.repositories.base import InstitutionPersistenceError, InstitutionRepository
from matching.base import ReferenceLookup
from matching.normalizer import normalize_name


class InMemoryInstitutionRepository(InstitutionRepository):
    """
    Dict-backed repository mirroring the SQL repository's lookup rules.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._institutions: dict[str, InstitutionRecord] = {}
        self._profiles: dict[str, ProfileFields] = {}
        self._contacts: dict[str, ContactRecord] = {}
        self._committed = self._snapshot()
        self.fail_on_create: set[str] = set()
        self.commits = 0
        self.rollbacks = 0
        self.writes = 0

    # --- test helpers -------------------------------------------------

    def seed_institution(self, **overrides: Any) -> InstitutionRecord:
        values: dict[str, Any] = {
            "name": "General Hospital",
            "type": "hospital",
            "street": "123 Main",
            "city": "Healthcare City",
            "state": "CA",
            "zip_code": "90210",
            "country": "US",
        }
        values.update(overrides)
        institution_id = self.create_institution(InstitutionFields(**values))
        self.commit()
        return self._institutions[institution_id]

    def seed_profile(self, institution_id: str, profile: ProfileFields) -> None:
        self.create_or_update_profile(institution_id, profile)
        self.commit()

    def seed_contact(self, institution_id: str, *, is_locked: bool = False, **fields: Any) -> ContactRecord:
        contact_id = self.create_contact(institution_id, ContactFields(**fields))
        self._contacts[contact_id] = replace(self._contacts[contact_id], is_locked=is_locked)
        self.commit()
        return self._contacts[contact_id]

    @property
    def institutions(self) -> list[InstitutionRecord]:
        return list(self._institutions.values())

    def contacts_for(self, institution_id: str) -> list[ContactRecord]:
        return [contact for contact in self._contacts.values() if contact.institution_id == institution_id]

    # --- lookups ------------------------------------------------------

    def find_institution_by_accounting_number(self, code: str) -> InstitutionRecord | None:
        target = code.strip().upper()
        for record in self._institutions.values():
            if (record.accounting_number or "").strip().upper() == target:
                return record
        return None

    def find_institutions_by_name_and_city(
        self,
        name: str,
        city: str,
        *,
        limit: int = 500,
    ) -> list[InstitutionRecord]:
        city_key = city.strip().lower()
        in_city = [record for record in self._institutions.values() if record.city.strip().lower() == city_key]
        in_city.sort(key=lambda record: 0 if record.name.strip().lower() == name.strip().lower() else 1)
        return in_city[:limit]

    def find_institution_exact(
        self,
        name: str,
        street: str,
        city: str,
        zip_code: str,
    ) -> InstitutionRecord | None:
        for record in self._institutions.values():
            if (
                record.street.strip().lower() == street.strip().lower()
                and record.city.strip().lower() == city.strip().lower()
                and record.zip_code.strip() == zip_code.strip()
                and normalize_name(record.name) == normalize_name(name)
            ):
                return record
        return None

    def get_institution(self, institution_id: str) -> InstitutionRecord | None:
        return self._institutions.get(institution_id)

    def get_profile(self, institution_id: str) -> ProfileFields | None:
        return self._profiles.get(institution_id)

    def find_contact(self, institution_id: str, identity: ContactIdentity) -> ContactRecord | None:
        for contact in self.contacts_for(institution_id):
            if identity.email:
                if (contact.email or "").lower() == identity.email.lower():
                    return contact
            elif (contact.first_name, contact.last_name, contact.phone) == (
                identity.first_name,
                identity.last_name,
                identity.phone,
            ):
                return contact
        return None

    # --- writes -------------------------------------------------------

    def create_institution(self, fields: InstitutionFields) -> str:
        if fields.name in self.fail_on_create:
            raise InstitutionPersistenceError(f"Failed to create institution: {fields.name}")
        self.writes += 1
        institution_id = f"inst-{next(self._ids)}"
        self._institutions[institution_id] = InstitutionRecord(
            id=institution_id,
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
            tags=tuple(fields.tags),
            data_source=fields.data_source,
        )
        return institution_id

    def update_institution(self, institution_id: str, changes: Mapping[str, Any]) -> None:
        self.writes += 1
        self._institutions[institution_id] = replace(self._institutions[institution_id], **changes)

    def create_or_update_profile(self, institution_id: str, fields: ProfileFields) -> None:
        self.writes += 1
        self._profiles[institution_id] = fields

    def create_contact(self, institution_id: str, fields: ContactFields) -> str:
        self.writes += 1
        contact_id = f"contact-{next(self._ids)}"
        self._contacts[contact_id] = ContactRecord(
            id=contact_id,
            institution_id=institution_id,
            first_name=fields.first_name or "Contact",
            last_name=fields.last_name or "Imported",
            email=fields.email,
            phone=fields.phone,
            title=fields.title,
            department=fields.department,
            is_primary=bool(fields.is_primary),
        )
        return contact_id

    def update_contact(self, contact_id: str, changes: Mapping[str, Any]) -> None:
        self.writes += 1
        self._contacts[contact_id] = replace(self._contacts[contact_id], **changes)

    # --- unit of work -------------------------------------------------

    def commit(self) -> None:
        self.commits += 1
        self._committed = self._snapshot()

    def rollback(self) -> None:
        self.rollbacks += 1
        institutions, profiles, contacts = self._committed
        self._institutions = dict(institutions)
        self._profiles = dict(profiles)
        self._contacts = dict(contacts)

    def _snapshot(self) -> tuple[dict, dict, dict]:
        return dict(self._institutions), dict(self._profiles), dict(self._contacts)


class ScriptedReferenceLookup(ReferenceLookup):
    """
    Reference lookup answering from fixed tables, or failing on demand.
    """

    def __init__(
        self,
        *,
        by_accounting_number: dict[str, ExternalRef] | None = None,
        by_name: dict[str, ExternalRef] | None = None,
        fail: bool = False,
    ) -> None:
        self._by_accounting_number = by_accounting_number or {}
        self._by_name = by_name or {}
        self._fail = fail
        self.calls: list[tuple[str, ...]] = []

    def search_by_accounting_number(self, code: str) -> ExternalRef | None:
        self.calls.append(("accounting_number", code))
        if self._fail:
            raise ConnectorRequestError("reference_lookup: request failed after retries.")
        return self._by_accounting_number.get(code)

    def search_by_name(self, name: str, city: str | None) -> ExternalRef | None:
        self.calls.append(("name", name, city or ""))
        if self._fail:
            raise ConnectorRequestError("reference_lookup: request failed after retries.")
        return self._by_name.get(name)

