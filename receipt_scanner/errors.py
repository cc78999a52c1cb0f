"""Error taxonomy for the receipt scanning pipeline.

Fatal errors derive from :class:`ReceiptScanError` and carry a stable
``code``, whether retrying the same photo could help, and guidance the
user can act on. Line- and engine-level errors are recovered locally by
the parser and the OCR orchestrator respectively.
"""


class ReceiptScanError(Exception):
    """Base class for errors surfaced to callers of the pipeline.

    Args:
        message: Human-readable description of the failure.
        guidance: Suggested action for the user, e.g. retaking the photo.
    """

    code = "SCAN_FAILED"
    retryable = False
    default_guidance = "Try again with a clearer photo of the receipt."

    def __init__(self, message: str, guidance: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.guidance = guidance or self.default_guidance

    def to_dict(self) -> dict[str, object]:
        """Serialize the error for API and CLI output."""
        return {
            "code": self.code,
            "message": self.message,
            "guidance": self.guidance,
            "retryable": self.retryable,
        }


class PreprocessingError(ReceiptScanError):
    """The image could not be decoded or collapsed to nothing."""

    code = "PREPROCESSING_FAILED"
    retryable = True
    default_guidance = (
        "Retake the photo with the whole receipt in frame on a plain background."
    )


class OCRUnavailable(ReceiptScanError):
    """No OCR engine produced any text."""

    code = "OCR_UNAVAILABLE"
    retryable = True
    default_guidance = "Text recognition is unavailable right now. Try again later."


class NoItemsFound(ReceiptScanError):
    """Text was recognized but no purchase lines could be parsed."""

    code = "NO_ITEMS_FOUND"
    retryable = True
    default_guidance = (
        "No items were found. Make sure the item lines and prices are visible."
    )


class ScanCancelled(ReceiptScanError):
    """The caller cancelled the scan."""

    code = "SCAN_CANCELLED"
    default_guidance = "The scan was cancelled."


class PriceParseError(ValueError):
    """A price-shaped string could not be normalized to an amount."""


class OCREngineError(RuntimeError):
    """A single OCR engine failed or is not configured."""
