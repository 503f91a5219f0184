"""Pydantic request/response schemas for the FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel


class ExtractionErrorResponse(BaseModel):
    """Response schema for one reason a document was rejected."""

    kind: str
    field: str | None = None
    detail: str


class ExtractionResponse(BaseModel):
    """Response schema for a single document extraction."""

    success: bool
    document_id: str
    filename: str
    status: str
    record: dict[str, Any] | None = None
    errors: list[ExtractionErrorResponse]
    warnings: list[str]
    states: list[str]
    ocr_calls: int = 0
    processing_time_ms: float


class BatchItemResponse(BaseModel):
    """Response schema for a single item in a batch extraction."""

    filename: str
    result: ExtractionResponse | None = None
    error: str | None = None


class BatchExtractionResponse(BaseModel):
    """Response schema for batch extraction of multiple documents."""

    success: bool
    total_documents: int
    successful: int
    failed: int
    results: list[BatchItemResponse]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
