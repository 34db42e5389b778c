"""
app/schemas/institution_import.py

Response schemas for institution import endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.domain.institution_import import ImportResult, ImportRowError, RowOutcome, ValidationSummary


class ImportRowErrorResponse(BaseModel):
    """
    API response model for one row-level import error.
    """

    row: int = Field(..., ge=1)
    message: str
    field: str | None = None

    @classmethod
    def from_domain(cls, error: ImportRowError) -> ImportRowErrorResponse:
        return cls(row=error.row, message=error.message, field=error.field)


class RowOutcomeResponse(BaseModel):
    row: int = Field(..., ge=1)
    status: str
    institution_ref: str | None = None
    match_type: str | None = None
    confidence: int | None = Field(default=None, ge=0, le=100)
    message: str | None = None

    @classmethod
    def from_domain(cls, outcome: RowOutcome) -> RowOutcomeResponse:
        return cls(
            row=outcome.row,
            status=outcome.status,
            institution_ref=outcome.institution_ref,
            match_type=outcome.match_type,
            confidence=outcome.confidence,
            message=outcome.message,
        )


class ImportResultResponse(BaseModel):
    """
    API response model for a full institution import run.
    """

    total_rows: int = Field(..., ge=0)
    successful_imports: int = Field(..., ge=0)
    failed_imports: int = Field(..., ge=0)
    duplicates_found: int = Field(..., ge=0)
    duplicates_merged: int = Field(..., ge=0)
    duplicates_skipped: int = Field(..., ge=0)
    imported_record_refs: list[str] = Field(default_factory=list)
    errors: list[ImportRowErrorResponse] = Field(default_factory=list)
    outcomes: list[RowOutcomeResponse] = Field(default_factory=list)
    success: bool

    @classmethod
    def from_domain(cls, result: ImportResult) -> ImportResultResponse:
        return cls(
            total_rows=result.total_rows,
            successful_imports=result.successful_imports,
            failed_imports=result.failed_imports,
            duplicates_found=result.duplicates_found,
            duplicates_merged=result.duplicates_merged,
            duplicates_skipped=result.duplicates_skipped,
            imported_record_refs=list(result.imported_record_refs),
            errors=[ImportRowErrorResponse.from_domain(error) for error in result.errors],
            outcomes=[RowOutcomeResponse.from_domain(outcome) for outcome in result.outcomes],
            success=result.success,
        )


class ValidationSummaryResponse(BaseModel):
    """
    API response model for a read-only validation run.
    """

    total_rows: int = Field(..., ge=0)
    valid_rows: int = Field(..., ge=0)
    duplicates_found: int = Field(..., ge=0)
    errors: list[ImportRowErrorResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, summary: ValidationSummary) -> ValidationSummaryResponse:
        return cls(
            total_rows=summary.total_rows,
            valid_rows=summary.valid_rows,
            duplicates_found=summary.duplicates_found,
            errors=[ImportRowErrorResponse.from_domain(error) for error in summary.errors],
        )
