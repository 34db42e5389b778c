"""
app/connectors package marker.
"""

from app.connectors.base import BaseConnector, ConnectorRequestError
from app.connectors.reference_lookup_connector import ReferenceLookupConnector

__all__ = [
    "BaseConnector",
    "ConnectorRequestError",
    "ReferenceLookupConnector",
]
