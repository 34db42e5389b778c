"""
app/api/dependencies.py

Shared FastAPI dependencies for CSV upload handling.
"""

from __future__ import annotations

from fastapi import File, HTTPException, UploadFile, status

from app.config import get_institution_import_settings

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}


def get_csv_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a CSV by extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").split(";", 1)[0].strip().lower()

    if not filename.endswith(".csv") and content_type not in CSV_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed.",
        )

    return file


def read_csv_upload(file: UploadFile) -> bytes:
    """
    Read an accepted upload fully, enforcing the configured size limit.
    """

    max_bytes = get_institution_import_settings().max_upload_bytes
    try:
        payload = file.file.read(max_bytes + 1)
    finally:
        file.file.close()

    if len(payload) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"CSV upload exceeds the {max_bytes} byte limit.",
        )
    return payload
