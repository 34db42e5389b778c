"""
app/api/routers/institution_import.py

Institution CSV import HTTP endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_csv_upload, read_csv_upload
from app.domain.institution_import import ImportOptions
from app.parsers.csv_parser import CSVStructureError
from app.schemas.institution_import import ImportResultResponse, ValidationSummaryResponse
from app.services.institution_import_service import (
    InstitutionImportService,
    build_institution_import_service,
)
from db.session import get_db

router = APIRouter(prefix="/institutions/import", tags=["institution-import"])

TEMPLATE_FILENAME = "institution_import_template.csv"


def get_institution_import_service(db: Session = Depends(get_db)) -> InstitutionImportService:
    return build_institution_import_service(db)


@router.get("/template")
def download_template(
    import_service: InstitutionImportService = Depends(get_institution_import_service),
) -> Response:
    """
    Download a CSV template with every supported column and an example row.
    """

    return Response(
        content=import_service.generate_template(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
    )


@router.post("/validate", response_model=ValidationSummaryResponse)
def validate_institution_csv(
    file: UploadFile = Depends(get_csv_upload),
    import_service: InstitutionImportService = Depends(get_institution_import_service),
) -> ValidationSummaryResponse:
    """
    Validate a CSV file and count likely duplicates without writing anything.
    """

    payload = read_csv_upload(file)
    try:
        summary = import_service.validate(payload)
    except CSVStructureError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ValidationSummaryResponse.from_domain(summary)


@router.post("", response_model=ImportResultResponse)
def import_institution_csv(
    file: UploadFile = Depends(get_csv_upload),
    validate_only: bool = Query(default=False, description="Validate rows without writing"),
    skip_duplicates: bool = Query(default=False, description="Leave matched institutions untouched"),
    merge_duplicates: bool = Query(default=False, description="Merge rows into matched institutions"),
    assigned_owner_id: str | None = Query(default=None, description="Owner assigned to created institutions"),
    import_service: InstitutionImportService = Depends(get_institution_import_service),
) -> ImportResultResponse:
    """
    Import institutions from one CSV file.
    """

    payload = read_csv_upload(file)
    options = ImportOptions(
        validate_only=validate_only,
        skip_duplicates=skip_duplicates,
        merge_duplicates=merge_duplicates,
        assigned_owner_id=assigned_owner_id,
    )
    try:
        result = import_service.import_records(payload, options)
    except CSVStructureError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ImportResultResponse.from_domain(result)
