"""
app/mappers/field_mapper.py

Header synonym table mapping localized CSV column names to canonical fields.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

INSTITUTION_FIELDS: tuple[str, ...] = (
    "name",
    "type",
    "street",
    "city",
    "state",
    "zipCode",
    "country",
    "accountingNumber",
)

PROFILE_FIELDS: tuple[str, ...] = (
    "bedCapacity",
    "surgicalRooms",
    "specialties",
    "departments",
    "equipmentTypes",
    "certifications",
    "complianceStatus",
    "lastAuditDate",
    "complianceExpirationDate",
    "complianceNotes",
)

CONTACT_FIELDS: tuple[str, ...] = (
    "contactFirstName",
    "contactLastName",
    "contactEmail",
    "contactPhone",
    "contactTitle",
    "contactDepartment",
    "contactIsPrimary",
)

CANONICAL_FIELDS: tuple[str, ...] = INSTITUTION_FIELDS + PROFILE_FIELDS + ("tags",) + CONTACT_FIELDS

REQUIRED_FIELDS: tuple[str, ...] = (
    "name",
    "type",
    "street",
    "city",
    "state",
    "zipCode",
    "country",
)

LIST_FIELDS: tuple[str, ...] = (
    "specialties",
    "departments",
    "equipmentTypes",
    "certifications",
    "tags",
)

DEFAULT_FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "name": (
        "institution name",
        "institution",
        "hospital name",
        "facility name",
        "organization",
        "organisation",
        "nom",
        "nom de l'établissement",
        "nom etablissement",
        "établissement",
        "etablissement",
        "raison sociale",
    ),
    "type": (
        "institution type",
        "hospital type",
        "facility type",
        "type d'établissement",
        "type etablissement",
        "catégorie",
        "categorie",
    ),
    "street": (
        "street address",
        "address",
        "address line 1",
        "adresse",
        "rue",
        "voie",
    ),
    "city": ("town", "ville", "commune", "localité", "localite"),
    "state": ("province", "region", "région", "département", "departement"),
    "zipCode": (
        "zip code",
        "zip",
        "postal code",
        "postcode",
        "code postal",
        "cp",
    ),
    "country": ("pays", "country code", "code pays"),
    "accountingNumber": (
        "accounting number",
        "accounting code",
        "account number",
        "numéro comptable",
        "numero comptable",
        "code comptable",
        "code client",
    ),
    "bedCapacity": (
        "bed capacity",
        "beds",
        "number of beds",
        "nombre de lits",
        "capacité lits",
        "capacite lits",
        "lits",
    ),
    "surgicalRooms": (
        "surgical rooms",
        "operating rooms",
        "salles d'opération",
        "salles operation",
        "blocs opératoires",
        "blocs operatoires",
    ),
    "specialties": ("specialities", "spécialités", "specialites"),
    "departments": ("services", "départements médicaux"),
    "equipmentTypes": (
        "equipment types",
        "equipment",
        "équipements",
        "equipements",
        "types d'équipement",
    ),
    "certifications": ("accreditations", "accréditations"),
    "complianceStatus": (
        "compliance status",
        "compliance",
        "conformité",
        "conformite",
        "statut de conformité",
    ),
    "lastAuditDate": (
        "last audit date",
        "audit date",
        "date du dernier audit",
        "dernier audit",
    ),
    "complianceExpirationDate": (
        "compliance expiration date",
        "expiration date",
        "date d'expiration",
        "date expiration conformité",
    ),
    "complianceNotes": ("compliance notes", "notes", "remarques", "commentaires"),
    "tags": ("labels", "étiquettes", "etiquettes", "mots-clés"),
    "contactFirstName": (
        "contact first name",
        "first name",
        "firstname",
        "prénom",
        "prenom",
        "prénom du contact",
    ),
    "contactLastName": (
        "contact last name",
        "last name",
        "lastname",
        "nom du contact",
        "nom de famille",
    ),
    "contactEmail": (
        "contact email",
        "email",
        "e-mail",
        "courriel",
        "adresse email",
    ),
    "contactPhone": (
        "contact phone",
        "phone",
        "telephone",
        "téléphone",
        "tel",
        "tél",
    ),
    "contactTitle": ("contact title", "job title", "title", "fonction", "poste"),
    "contactDepartment": ("contact department", "service du contact"),
    "contactIsPrimary": (
        "contact is primary",
        "primary contact",
        "is primary",
        "contact principal",
    ),
}


def normalize_header(header: str) -> str:
    """
    Normalize a header for synonym lookup: trimmed, lowercased, single-spaced.
    """

    return " ".join(header.strip().lower().split())


class FieldMapper:
    """
    Maps raw CSV headers to canonical field names through a static synonym table.

    Every canonical field also answers to its own name, case-insensitively.
    """

    def __init__(self, *, synonyms: Mapping[str, Sequence[str]] | None = None) -> None:
        table = synonyms if synonyms is not None else DEFAULT_FIELD_SYNONYMS
        self._lookup: dict[str, str] = {}
        for canonical_field in CANONICAL_FIELDS:
            self._register(normalize_header(canonical_field), canonical_field)
        for canonical_field, values in table.items():
            if canonical_field not in CANONICAL_FIELDS:
                raise ValueError(f"Unknown canonical field in synonym table: {canonical_field}")
            for value in values:
                self._register(normalize_header(value), canonical_field)

    def map_header(self, raw_header: str) -> str | None:
        """
        Return the canonical field for one header, or None when it is unknown.
        """

        return self._lookup.get(normalize_header(raw_header or ""))

    def map_headers(self, headers: Sequence[str]) -> list[str | None]:
        """
        Map a header row positionally.

        Unknown headers map to None. When two headers resolve to the same
        canonical field, the leftmost one wins and later ones are ignored.
        """

        columns: list[str | None] = []
        seen: set[str] = set()
        for header in headers:
            canonical_field = self.map_header(header)
            if canonical_field is None:
                logger.debug("Ignoring unmapped CSV header header=%r", header)
            elif canonical_field in seen:
                logger.debug(
                    "Ignoring duplicate CSV header header=%r canonical_field=%s",
                    header,
                    canonical_field,
                )
                canonical_field = None
            else:
                seen.add(canonical_field)
            columns.append(canonical_field)
        return columns

    def _register(self, key: str, canonical_field: str) -> None:
        existing = self._lookup.get(key)
        if existing is not None and existing != canonical_field:
            raise ValueError(
                f"Header synonym '{key}' is ambiguous: {existing} and {canonical_field}."
            )
        self._lookup[key] = canonical_field
