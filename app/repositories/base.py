"""
app/repositories/base.py

Repository contract consumed by institution matching and import.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from app.domain.institution_import import (
    ContactFields,
    ContactIdentity,
    ContactRecord,
    InstitutionFields,
    InstitutionRecord,
    ProfileFields,
)


class InstitutionPersistenceError(RuntimeError):
    """
    Raised when an institution, profile or contact write fails.
    """


class InstitutionRepository(ABC):
    """
    Read/write access to institutions and their profile and contacts.

    Lookups return immutable snapshots. Writes become durable on
    :meth:`commit`; :meth:`rollback` discards everything since the last commit.
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @abstractmethod
    def find_institution_by_accounting_number(self, code: str) -> InstitutionRecord | None:
        """
        Return the institution whose accounting number equals ``code``, ignoring case.
        """

    @abstractmethod
    def find_institutions_by_name_and_city(
        self,
        name: str,
        city: str,
        *,
        limit: int = 500,
    ) -> list[InstitutionRecord]:
        """
        Return up to ``limit`` institutions located in ``city``.

        City is compared trimmed and case-insensitively. Institutions whose
        name equals ``name`` case-insensitively come first.
        """

    @abstractmethod
    def find_institution_exact(
        self,
        name: str,
        street: str,
        city: str,
        zip_code: str,
    ) -> InstitutionRecord | None:
        """
        Return the institution with the same normalized name and address.

        Street and city compare trimmed and case-insensitively, zip code trimmed.
        """

    @abstractmethod
    def get_institution(self, institution_id: str) -> InstitutionRecord | None:
        """
        Return one institution by id.
        """

    @abstractmethod
    def get_profile(self, institution_id: str) -> ProfileFields | None:
        """
        Return the medical profile of an institution, if any.
        """

    @abstractmethod
    def find_contact(
        self,
        institution_id: str,
        identity: ContactIdentity,
    ) -> ContactRecord | None:
        """
        Return the institution contact with the given identity.

        Email compares case-insensitively; without email, first name, last
        name and phone must all be equal.
        """

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    def create_institution(self, fields: InstitutionFields) -> str:
        """
        Insert an institution and return its id.
        """

    @abstractmethod
    def update_institution(self, institution_id: str, changes: Mapping[str, Any]) -> None:
        """
        Apply attribute changes (keys are :class:`InstitutionFields` names).
        """

    @abstractmethod
    def create_or_update_profile(self, institution_id: str, fields: ProfileFields) -> None:
        """
        Insert the profile or replace the stored values with ``fields``.
        """

    @abstractmethod
    def create_contact(self, institution_id: str, fields: ContactFields) -> str:
        """
        Insert a contact for an institution and return its id.
        """

    @abstractmethod
    def update_contact(self, contact_id: str, changes: Mapping[str, Any]) -> None:
        """
        Apply attribute changes (keys are :class:`ContactFields` names).
        """

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @abstractmethod
    def commit(self) -> None:
        """
        Make pending writes durable.
        """

    @abstractmethod
    def rollback(self) -> None:
        """
        Discard pending writes.
        """
