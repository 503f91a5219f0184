"""FastAPI application for the Fayda ID extraction API.

Provides REST endpoints for single and batch extraction of eFayda PDFs
and a health check.
"""

import uuid
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from fayda_ocr import __version__
from fayda_ocr.models import ExtractionOutcome
from fayda_ocr.ocr.tesseract_engine import TesseractEngine
from fayda_ocr.pipeline.orchestrator import IdentityPipeline
from fayda_ocr.utils.config import load_config
from fayda_ocr.utils.logger import get_logger

from .schemas import (
    BatchExtractionResponse,
    BatchItemResponse,
    ExtractionErrorResponse,
    ExtractionResponse,
    HealthResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Fayda ID Extraction API",
    description="Extract normalized identity records from eFayda PDFs",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/x-pdf",
    "application/octet-stream",
}


def _get_pipeline() -> IdentityPipeline:
    """Build the extraction pipeline from the current configuration."""
    return IdentityPipeline(load_config())


def _to_response(
    outcome: ExtractionOutcome, include_images: bool
) -> ExtractionResponse:
    return ExtractionResponse(
        success=outcome.is_complete,
        document_id=str(uuid.uuid4()),
        filename=outcome.filename,
        status=outcome.status.value,
        record=(
            outcome.record.to_dict(include_images=include_images)
            if outcome.record
            else None
        ),
        errors=[ExtractionErrorResponse(**e.to_dict()) for e in outcome.errors],
        warnings=outcome.warnings,
        states=[s.value for s in outcome.states],
        ocr_calls=outcome.ocr_calls,
        processing_time_ms=outcome.processing_time_ms,
    )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=TesseractEngine.is_available(),
    )


@app.post("/extract", response_model=ExtractionResponse)
async def extract_document(
    file: Annotated[UploadFile, File(...)],
    include_images: Annotated[bool, Query()] = False,
) -> ExtractionResponse:
    """Extract an identity record from an uploaded eFayda PDF.

    Rejected documents are reported with ``success=false`` and the error
    list rather than an HTTP error.

    Args:
        file: Uploaded PDF.
        include_images: Embed photo and QR code as base64 in the record.

    Returns:
        Extraction outcome with record, errors, warnings and state trace.
    """
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )

    try:
        pipeline = _get_pipeline()
        content = await file.read()
        outcome = await run_in_threadpool(
            pipeline.process, content, file.filename or "document.pdf"
        )
    except Exception as exc:
        logger.error("Extraction failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return _to_response(outcome, include_images)


@app.post("/extract/batch", response_model=BatchExtractionResponse)
async def extract_batch(
    files: Annotated[list[UploadFile], File(...)],
) -> BatchExtractionResponse:
    """Extract identity records from several uploaded PDFs.

    Args:
        files: List of uploaded PDFs.

    Returns:
        Batch extraction results with per-file outcomes.
    """
    results: list[BatchItemResponse] = []
    successful = 0

    for file in files:
        filename = file.filename or "unknown"
        try:
            result = await extract_document(file)
        except HTTPException as exc:
            results.append(BatchItemResponse(filename=filename, error=exc.detail))
            continue
        results.append(BatchItemResponse(filename=filename, result=result))
        if result.success:
            successful += 1

    return BatchExtractionResponse(
        success=successful > 0,
        total_documents=len(files),
        successful=successful,
        failed=len(files) - successful,
        results=results,
    )
