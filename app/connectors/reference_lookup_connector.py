"""
app/connectors/reference_lookup_connector.py

Connector for the external institution reference directory.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from app.config import ExternalHTTPSettings, ReferenceLookupSettings
from app.connectors.base import BaseConnector
from app.domain.institution_import import ExternalRef
from matching.base import ReferenceLookup

logger = logging.getLogger(__name__)


class ReferenceLookupConnector(BaseConnector, ReferenceLookup):
    """
    Resolves institutions against the reference directory search endpoint.

    The endpoint answers ``{"results": [{"id", "name", "accountingNumber", "city"}]}``;
    the first result is used. Errors surface as ``ConnectorRequestError`` and
    are handled by the matching engine.
    """

    def __init__(
        self,
        *,
        settings: ReferenceLookupSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(
            source="reference_lookup",
            http_settings=http_settings,
            session=session,
            sleep=sleep,
        )
        self._settings = settings

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.enabled and self._settings.base_url)

    def search_by_accounting_number(self, code: str) -> ExternalRef | None:
        normalized = (code or "").strip()
        if not normalized:
            return None
        return self._search({"accountingNumber": normalized})

    def search_by_name(self, name: str, city: str | None) -> ExternalRef | None:
        normalized_name = (name or "").strip()
        if not normalized_name:
            return None
        params = {"name": normalized_name}
        if city and city.strip():
            params["city"] = city.strip()
        return self._search(params)

    def _search(self, params: dict[str, str]) -> ExternalRef | None:
        if not self.is_configured:
            return None

        headers = {"Accept": "application/json"}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"

        payload = self._get_json(
            url=f"{self._settings.base_url.rstrip('/')}{self._settings.search_path}",
            params=params,
            headers=headers,
        )
        results = payload.get("results", []) if isinstance(payload, dict) else []
        for item in results:
            reference = self._parse_result(item)
            if reference is not None:
                logger.debug(
                    "Reference lookup resolved params=%s external_id=%s",
                    params,
                    reference.external_id,
                )
                return reference
        return None

    @staticmethod
    def _parse_result(item: Any) -> ExternalRef | None:
        if not isinstance(item, dict):
            return None
        external_id = item.get("id")
        if external_id is None or str(external_id).strip() == "":
            return None
        return ExternalRef(
            external_id=str(external_id).strip(),
            name=_optional_str(item.get("name")),
            accounting_number=_optional_str(item.get("accountingNumber")),
            city=_optional_str(item.get("city")),
        )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None
