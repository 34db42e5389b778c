"""
matching/engine.py

Ordered matching cascade over the institution repository.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from typing import Sequence

from app.connectors.base import ConnectorRequestError
from app.domain.institution_import import (
    ExternalRef,
    MatchDetails,
    MatchInput,
    MatchResult,
    MatchType,
)
from app.logging_utils import log_event
from app.repositories.base import InstitutionRepository
from matching.base import MatchStrategy, ReferenceLookup
from matching.strategies import build_default_strategies

logger = logging.getLogger(__name__)


class MatchingEngine:
    """Finds the existing institution a candidate row refers to.

    Strategies run in list order and the first matched result wins. Unmatched
    results that carry suggestions are remembered so a final no-match can
    still report near misses. The engine never writes to the repository.

    When a reference lookup is configured it is consulted before the
    strategies. A resolved accounting number fills in a missing one on the
    input, and the external reference is attached to the result. Lookup
    failures are logged and ignored.
    """

    def __init__(
        self,
        repository: InstitutionRepository,
        *,
        strategies: Sequence[MatchStrategy] | None = None,
        reference_lookup: ReferenceLookup | None = None,
    ) -> None:
        self._repository = repository
        self._strategies: tuple[MatchStrategy, ...] = tuple(
            strategies if strategies is not None else build_default_strategies()
        )
        self._reference_lookup = reference_lookup

    @property
    def strategies(self) -> tuple[MatchStrategy, ...]:
        return self._strategies

    def find_best_match(self, match_input: MatchInput) -> MatchResult:
        external_ref = self._lookup_external_reference(match_input)
        effective_input = match_input
        if external_ref is not None and external_ref.accounting_number and not match_input.accounting_number:
            effective_input = replace(match_input, accounting_number=external_ref.accounting_number)

        near_miss: MatchResult | None = None
        for strategy in self._strategies:
            result = strategy.match(effective_input, self._repository)
            if result is None:
                continue
            if result.matched:
                logger.debug(
                    "Institution matched name=%r match_type=%s confidence=%s institution_ref=%s",
                    match_input.name,
                    result.match_type,
                    result.confidence,
                    result.institution_ref,
                )
                return replace(result, external_ref=external_ref)
            if near_miss is None:
                near_miss = result

        if near_miss is not None and near_miss.suggestions:
            details = replace(
                near_miss.details,
                reason=(
                    f"No match found; {len(near_miss.suggestions)} similar "
                    "institution(s) suggested for review"
                ),
            )
        elif near_miss is not None:
            details = near_miss.details
        else:
            details = MatchDetails(reason="No matching institution found")

        return MatchResult(
            matched=False,
            match_type=MatchType.NO_MATCH,
            confidence=0,
            details=details,
            suggestions=near_miss.suggestions if near_miss is not None else (),
            external_ref=external_ref,
        )

    def find_batch_matches(self, inputs: Sequence[MatchInput]) -> list[MatchResult]:
        """
        Match inputs one after another; each result is independent of the others.
        """

        results = [self.find_best_match(match_input) for match_input in inputs]
        by_type = Counter(result.match_type for result in results)
        log_event(
            logger,
            logging.INFO,
            "batch_matching_completed",
            total=len(results),
            matched=sum(1 for result in results if result.matched),
            by_match_type=dict(sorted(by_type.items())),
        )
        return results

    def _lookup_external_reference(self, match_input: MatchInput) -> ExternalRef | None:
        if self._reference_lookup is None:
            return None

        try:
            if match_input.accounting_number:
                return self._reference_lookup.search_by_accounting_number(match_input.accounting_number)
            return self._reference_lookup.search_by_name(match_input.name, match_input.city)
        except ConnectorRequestError as exc:
            logger.warning(
                "Reference lookup failed; falling back to local matching name=%r error=%s",
                match_input.name,
                exc,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Reference lookup raised unexpectedly; falling back to local matching name=%r error=%r",
                match_input.name,
                exc,
            )
        return None
