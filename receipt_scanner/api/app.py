"""FastAPI application for the receipt scanner.

Provides REST endpoints for scanning receipt photos, parsing receipt
text, and health checks. Pipeline failures are returned as HTTP 422
with a machine-readable code and user guidance.
"""

import shutil
import time
from datetime import date
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from receipt_scanner.context import ScanContext
from receipt_scanner.errors import ReceiptScanError
from receipt_scanner.pipeline import ReceiptScanner, ScanResult
from receipt_scanner.utils.config import load_config
from receipt_scanner.utils.logger import get_logger

from .schemas import (
    DiscountResponse,
    ErrorResponse,
    HealthResponse,
    ItemResponse,
    MismatchResponse,
    ParseRequest,
    ScanResponse,
    TextIssueResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="Grocery Receipt Scanner API",
    description="Turn receipt photos into categorized grocery items with expiry dates",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_scanner() -> ReceiptScanner:
    """Build a receipt scanner from the current configuration."""
    return ReceiptScanner(load_config())


_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "image/webp",
    "application/octet-stream",
}


@app.exception_handler(ReceiptScanError)
async def receipt_error_handler(
    request: Request, exc: ReceiptScanError
) -> JSONResponse:
    """Render pipeline errors with their code and guidance."""
    logger.warning("Scan failed with %s: %s", exc.code, exc.message)
    body = ErrorResponse(**exc.to_dict())
    return JSONResponse(status_code=422, content=body.model_dump())


def _to_response(result: ScanResult, started: float) -> ScanResponse:
    receipt = result.receipt
    return ScanResponse(
        success=True,
        run_id=result.run_id,
        vendor=receipt.vendor,
        date=receipt.date,
        currency=receipt.currency,
        items=[
            ItemResponse(
                name=c.item.name,
                raw_name=c.item.raw_name,
                quantity=c.item.quantity,
                unit=c.item.unit,
                unit_price=c.item.unit_price,
                price=c.item.price_total,
                category=c.category,
                shelf_life_days=c.shelf_life_days,
                rule=c.rule_label,
                expires_on=c.expires_on,
                ocr_confidence=c.ocr_confidence,
                needs_review=c.item.needs_review,
                review_reasons=list(c.item.review_reasons),
            )
            for c in result.items
        ],
        discounts=[
            DiscountResponse(label=d.label, amount=d.amount) for d in receipt.discounts
        ],
        subtotal=receipt.subtotal,
        tax_total=receipt.tax_total,
        total=receipt.total,
        needs_review=receipt.needs_review,
        review_reasons=list(receipt.review_reasons),
        mismatches=[
            MismatchResponse(
                field_name=m.field_name,
                declared=m.declared,
                calculated=m.calculated,
                delta=m.delta,
            )
            for m in receipt.mismatches
        ],
        skipped_lines=[s.text for s in receipt.skipped_lines],
        text_issues=[
            TextIssueResponse(
                code=i.code,
                severity=i.severity,
                message=i.message,
                suggestion=i.suggestion,
            )
            for i in result.text_report.issues
        ],
        language=result.text_report.language,
        ocr_engine=result.ocr_engine,
        ocr_confidence=result.ocr_confidence,
        adjustments=result.adjustments,
        raw_text=receipt.raw_text,
        processing_time_ms=(time.time() - started) * 1000,
    )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    config = load_config()
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tesseract_available=shutil.which(config.ocr.tesseract_cmd or "tesseract")
        is not None,
        vision_configured=config.ocr.vision_enabled
        and bool(config.ocr.vision_api_key),
    )


@app.post(
    "/scan",
    response_model=ScanResponse,
    responses={422: {"model": ErrorResponse}},
)
async def scan_receipt(
    file: Annotated[UploadFile, File(...)],
    purchase_date: Annotated[date | None, Query()] = None,
) -> ScanResponse:
    """Scan an uploaded receipt photo.

    Args:
        file: Uploaded receipt image (PNG, JPEG, TIFF, or WebP).
        purchase_date: Optional date overriding the one on the receipt.

    Returns:
        Categorized items, totals, and review information.
    """
    started = time.time()

    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )

    content = await file.read()
    scanner = _get_scanner()
    try:
        result = await run_in_threadpool(
            scanner.scan, content, ScanContext(), purchase_date
        )
    except ReceiptScanError:
        raise
    except Exception as exc:
        logger.error("Scan of %s failed: %s", file.filename, exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return _to_response(result, started)


@app.post(
    "/parse",
    response_model=ScanResponse,
    responses={422: {"model": ErrorResponse}},
)
async def parse_receipt_text(request: ParseRequest) -> ScanResponse:
    """Parse and categorize receipt text that was recognized elsewhere."""
    started = time.time()
    scanner = _get_scanner()
    result = await run_in_threadpool(
        scanner.parse_text, request.text, ScanContext(), request.purchase_date
    )
    return _to_response(result, started)
