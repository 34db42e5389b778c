"""
matching/normalizer.py

Deterministic name normalization and string similarity for institution matching.
"""

from __future__ import annotations

from collections import Counter

import regex

NAME_PREFIXES: tuple[str, ...] = (
    "chu ",
    "chr ",
    "ch ",
    "clinique ",
    "hôpital ",
    "hopital ",
    "centre ",
    "établissement ",
)

NAME_SUFFIXES: tuple[str, ...] = (
    " chu",
    " chr",
    " ch",
    " clinic",
    " hospital",
    " centre",
    " center",
)

_NON_WORD = regex.compile(r"[^\p{L}\p{N}\s]+")
_WHITESPACE = regex.compile(r"\s+")


def normalize_name(name: str | None) -> str:
    """Normalize an institution name for comparison.

    Lowercases and trims, removes one leading and one trailing organization
    type token from each list, strips punctuation while keeping every Unicode
    letter and digit, and collapses whitespace.

    Args:
        name: Raw institution name.

    Returns:
        The normalized name, possibly empty.
    """
    normalized = (name or "").strip().lower()

    for prefix in NAME_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix) :]

    for suffix in NAME_SUFFIXES:
        if normalized.endswith(suffix):
            normalized = normalized[: -len(suffix)]

    normalized = _NON_WORD.sub("", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def normalize_text(value: str | None) -> str:
    """Trim and lowercase an address component."""
    return (value or "").strip().lower()


def bigram_similarity(first: str, second: str) -> float:
    """Sørensen-Dice coefficient over character bigrams.

    Whitespace is ignored. Identical strings score 1.0; strings shorter than
    two characters that are not identical score 0.0. Bigrams are counted as
    a multiset, so repeated pairs only match as often as they occur in both.

    Args:
        first: First (normalized) string.
        second: Second (normalized) string.

    Returns:
        A symmetric score in the range [0, 1].
    """
    first = _WHITESPACE.sub("", first)
    second = _WHITESPACE.sub("", second)

    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    first_bigrams = Counter(first[index : index + 2] for index in range(len(first) - 1))
    intersection = 0
    for index in range(len(second) - 1):
        bigram = second[index : index + 2]
        if first_bigrams[bigram] > 0:
            first_bigrams[bigram] -= 1
            intersection += 1

    return (2.0 * intersection) / (len(first) + len(second) - 2)
