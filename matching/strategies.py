"""
matching/strategies.py

Concrete matching tiers, in the order the engine evaluates them.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable

from app.domain.institution_import import (
    InstitutionRecord,
    MatchDetails,
    MatchInput,
    MatchResult,
    MatchType,
)
from app.repositories.base import InstitutionRepository
from matching.base import MatchStrategy
from matching.normalizer import bigram_similarity, normalize_name, normalize_text

logger = logging.getLogger(__name__)

ACCOUNTING_NUMBER_CONFIDENCE = 100
EXACT_NAME_ADDRESS_CONFIDENCE = 95

FUZZY_MATCH_THRESHOLD = 0.80
FUZZY_SUGGESTION_THRESHOLD = 0.60
FUZZY_CONFIDENCE_CAP = 85
MAX_SUGGESTIONS = 3
CITY_CANDIDATE_LIMIT = 500


class AccountingNumberStrategy(MatchStrategy):
    """
    Case-insensitive exact lookup on the externally governed accounting number.

    A hit is accepted whatever the name or address says.
    """

    match_type = MatchType.ACCOUNTING_NUMBER

    def match(
        self,
        match_input: MatchInput,
        repository: InstitutionRepository,
    ) -> MatchResult | None:
        code = (match_input.accounting_number or "").strip().upper()
        if not code:
            return None

        record = repository.find_institution_by_accounting_number(code)
        if record is None:
            return None

        return MatchResult(
            matched=True,
            match_type=self.match_type,
            confidence=ACCOUNTING_NUMBER_CONFIDENCE,
            institution_ref=record.id,
            details=MatchDetails(reason=f"Accounting number {code} matches an existing institution"),
        )


class ExactNameAddressStrategy(MatchStrategy):
    """
    Normalized name plus street, city and zip code all equal on one record.
    """

    match_type = MatchType.EXACT_NAME_ADDRESS

    def match(
        self,
        match_input: MatchInput,
        repository: InstitutionRepository,
    ) -> MatchResult | None:
        street = (match_input.street or "").strip()
        city = (match_input.city or "").strip()
        zip_code = (match_input.zip_code or "").strip()
        if not (street and city and zip_code):
            return None

        record = repository.find_institution_exact(match_input.name, street, city, zip_code)
        if record is None:
            return None

        return MatchResult(
            matched=True,
            match_type=self.match_type,
            confidence=EXACT_NAME_ADDRESS_CONFIDENCE,
            institution_ref=record.id,
            details=MatchDetails(
                reason="Name and full address match an existing institution",
                name_similarity=1.0,
                city_match=True,
                address_match=True,
            ),
        )


class FuzzyNameCityStrategy(MatchStrategy):
    """
    Bigram similarity of normalized names among institutions of the same city.

    The best candidate is accepted at or above ``match_threshold``. Other
    candidates at or above ``suggestion_threshold`` are reported as
    suggestions, including when nothing is accepted.
    """

    match_type = MatchType.FUZZY_NAME_CITY

    def __init__(
        self,
        *,
        match_threshold: float = FUZZY_MATCH_THRESHOLD,
        suggestion_threshold: float = FUZZY_SUGGESTION_THRESHOLD,
        confidence_cap: int = FUZZY_CONFIDENCE_CAP,
        max_suggestions: int = MAX_SUGGESTIONS,
        candidate_limit: int = CITY_CANDIDATE_LIMIT,
        scorer: Callable[[str, str], float] = bigram_similarity,
    ) -> None:
        self._match_threshold = max(0.0, min(1.0, match_threshold))
        self._suggestion_threshold = max(0.0, min(self._match_threshold, suggestion_threshold))
        self._confidence_cap = confidence_cap
        self._max_suggestions = max(0, max_suggestions)
        self._candidate_limit = max(1, candidate_limit)
        self._scorer = scorer

    def match(
        self,
        match_input: MatchInput,
        repository: InstitutionRepository,
    ) -> MatchResult | None:
        city = normalize_text(match_input.city)
        if not city:
            return None

        candidates = [
            record
            for record in repository.find_institutions_by_name_and_city(
                match_input.name,
                match_input.city or "",
                limit=self._candidate_limit,
            )
            if normalize_text(record.city) == city
        ]
        if not candidates:
            return None

        scored = self._score(normalize_name(match_input.name), candidates)
        best_score, best_record = scored[0]

        if best_score >= self._match_threshold:
            confidence = min(math.floor(best_score * 100 + 0.5), self._confidence_cap)
            return MatchResult(
                matched=True,
                match_type=self.match_type,
                confidence=confidence,
                institution_ref=best_record.id,
                suggestions=self._suggestions(scored[1:]),
                details=MatchDetails(
                    reason=f"Similar name ({best_score:.2f}) in the same city",
                    name_similarity=best_score,
                    city_match=True,
                    address_match=False,
                ),
            )

        suggestions = self._suggestions(scored)
        logger.debug(
            "Fuzzy match below threshold name=%r city=%r best_score=%.3f suggestions=%s",
            match_input.name,
            match_input.city,
            best_score,
            len(suggestions),
        )
        return MatchResult(
            matched=False,
            match_type=MatchType.NO_MATCH,
            confidence=0,
            suggestions=suggestions,
            details=MatchDetails(
                reason=f"Best name similarity in the same city is {best_score:.2f}",
                name_similarity=best_score,
                city_match=True,
                address_match=False,
            ),
        )

    def _score(
        self,
        normalized_name: str,
        candidates: list[InstitutionRecord],
    ) -> list[tuple[float, InstitutionRecord]]:
        scored: list[tuple[float, InstitutionRecord]] = []
        for record in candidates:
            candidate_name = normalize_name(record.name)
            if normalized_name and candidate_name:
                score = self._scorer(normalized_name, candidate_name)
            else:
                score = 0.0
            scored.append((score, record))
        # Stable sort keeps repository order among equal scores.
        scored.sort(key=lambda item: item[0], reverse=True)
        return scored

    def _suggestions(self, scored: list[tuple[float, InstitutionRecord]]) -> tuple[str, ...]:
        return tuple(
            record.id for score, record in scored if score >= self._suggestion_threshold
        )[: self._max_suggestions]


def build_default_strategies(
    *,
    match_threshold: float = FUZZY_MATCH_THRESHOLD,
    suggestion_threshold: float = FUZZY_SUGGESTION_THRESHOLD,
    confidence_cap: int = FUZZY_CONFIDENCE_CAP,
    max_suggestions: int = MAX_SUGGESTIONS,
    candidate_limit: int = CITY_CANDIDATE_LIMIT,
) -> list[MatchStrategy]:
    """
    Return the standard cascade: accounting number, exact address, fuzzy city.
    """

    return [
        AccountingNumberStrategy(),
        ExactNameAddressStrategy(),
        FuzzyNameCityStrategy(
            match_threshold=match_threshold,
            suggestion_threshold=suggestion_threshold,
            confidence_cap=confidence_cap,
            max_suggestions=max_suggestions,
            candidate_limit=candidate_limit,
        ),
    ]
