"""
app/api/routers package marker.
"""

from app.api.routers.institution_import import router as institution_import_router

__all__ = [
    "institution_import_router",
]
