"""Pydantic request/response schemas for the FastAPI endpoints."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class ItemResponse(BaseModel):
    """A categorized receipt item."""

    name: str
    raw_name: str
    quantity: Decimal
    unit: str | None = None
    unit_price: Decimal | None = None
    price: Decimal
    category: str
    shelf_life_days: int
    rule: str
    expires_on: date
    ocr_confidence: float
    needs_review: bool = False
    review_reasons: list[str] = Field(default_factory=list)


class DiscountResponse(BaseModel):
    """A discount line; ``amount`` is negative."""

    label: str
    amount: Decimal


class MismatchResponse(BaseModel):
    """A declared amount that failed reconciliation."""

    field_name: str
    declared: Decimal
    calculated: Decimal
    delta: Decimal


class TextIssueResponse(BaseModel):
    """A diagnostic issue found in the OCR text."""

    code: str
    severity: str
    message: str
    suggestion: str


class ScanResponse(BaseModel):
    """Response schema for a scan or parse request."""

    success: bool
    run_id: str
    vendor: str | None = None
    date: str | None = None
    currency: str
    items: list[ItemResponse]
    discounts: list[DiscountResponse]
    subtotal: Decimal | None = None
    tax_total: Decimal | None = None
    total: Decimal | None = None
    needs_review: bool
    review_reasons: list[str]
    mismatches: list[MismatchResponse]
    skipped_lines: list[str]
    text_issues: list[TextIssueResponse]
    language: str
    ocr_engine: str | None = None
    ocr_confidence: float | None = None
    adjustments: list[str] = Field(default_factory=list)
    raw_text: str
    processing_time_ms: float


class ParseRequest(BaseModel):
    """Request body for parsing already-recognized receipt text."""

    text: str
    purchase_date: date | None = None


class ErrorResponse(BaseModel):
    """Body returned for pipeline failures."""

    code: str
    message: str
    guidance: str
    retryable: bool


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    vision_configured: bool
