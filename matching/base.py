"""
matching/base.py

Abstract contracts for the institution matching cascade.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.institution_import import ExternalRef, MatchInput, MatchResult
from app.repositories.base import InstitutionRepository


class MatchStrategy(ABC):
    """
    One tier of the matching cascade.

    Strategies only read from the repository. A strategy returns a matched
    :class:`MatchResult` when it is definitive, an unmatched result when it
    has near-miss suggestions worth reporting, and ``None`` when it does not
    apply to the input or found nothing.
    """

    match_type: str

    @abstractmethod
    def match(
        self,
        match_input: MatchInput,
        repository: InstitutionRepository,
    ) -> MatchResult | None:
        """
        Evaluate this tier against the current store contents.
        """


class ReferenceLookup(ABC):
    """
    External reference service able to resolve a row to a known identifier.
    """

    @abstractmethod
    def search_by_accounting_number(self, code: str) -> ExternalRef | None:
        """
        Resolve an accounting number to an external reference.
        """

    @abstractmethod
    def search_by_name(self, name: str, city: str | None) -> ExternalRef | None:
        """
        Resolve a name, optionally scoped to a city, to an external reference.
        """
