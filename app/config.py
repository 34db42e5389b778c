"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class InstitutionImportSettings:
    """
    Runtime settings for institution CSV import and matching.
    """

    fuzzy_match_threshold: float = 0.80
    fuzzy_suggestion_threshold: float = 0.60
    fuzzy_confidence_cap: int = 85
    max_suggestions: int = 3
    city_candidate_limit: int = 500
    log_validation_errors: bool = True
    max_upload_bytes: int = 10 * 1024 * 1024


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for external connectors.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 5.0


@dataclass(frozen=True)
class ReferenceLookupSettings:
    """
    External institution reference lookup settings.
    """

    enabled: bool = False
    base_url: str | None = None
    api_key: str | None = None
    search_path: str = "/institutions/search"


@lru_cache(maxsize=1)
def get_institution_import_settings() -> InstitutionImportSettings:
    """
    Return cached institution import settings from environment variables.

    The fuzzy confidence cap stays within [60, 94] so a fuzzy match never
    outranks an exact address match.
    """

    match_threshold = min(1.0, max(0.0, _get_float_env("INSTITUTION_IMPORT_FUZZY_MATCH_THRESHOLD", 0.80)))
    return InstitutionImportSettings(
        fuzzy_match_threshold=match_threshold,
        fuzzy_suggestion_threshold=min(
            match_threshold,
            max(0.0, _get_float_env("INSTITUTION_IMPORT_FUZZY_SUGGESTION_THRESHOLD", 0.60)),
        ),
        fuzzy_confidence_cap=min(94, max(60, _get_int_env("INSTITUTION_IMPORT_FUZZY_CONFIDENCE_CAP", 85))),
        max_suggestions=max(0, _get_int_env("INSTITUTION_IMPORT_MAX_SUGGESTIONS", 3)),
        city_candidate_limit=max(1, _get_int_env("INSTITUTION_IMPORT_CITY_CANDIDATE_LIMIT", 500)),
        log_validation_errors=_get_bool_env("INSTITUTION_IMPORT_LOG_VALIDATION_ERRORS", True),
        max_upload_bytes=max(1024, _get_int_env("INSTITUTION_IMPORT_MAX_UPLOAD_BYTES", 10 * 1024 * 1024)),
    )


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_reference_lookup_settings() -> ReferenceLookupSettings:
    """
    Return reference lookup connector settings from environment variables.
    """

    return ReferenceLookupSettings(
        enabled=_get_bool_env("REFERENCE_LOOKUP_ENABLED", False),
        base_url=_get_optional_str_env("REFERENCE_LOOKUP_BASE_URL"),
        api_key=_get_optional_str_env("REFERENCE_LOOKUP_API_KEY"),
        search_path=_get_str_env("REFERENCE_LOOKUP_SEARCH_PATH", "/institutions/search"),
    )
