"""Google Cloud Vision OCR engine over the REST ``images:annotate`` API.

Uses ``DOCUMENT_TEXT_DETECTION`` with English and French language hints.
Word confidences come from the page/block/paragraph/word tree of the
``fullTextAnnotation``; the result confidence is the mean word
confidence, the same score the orchestrator compares across engines.
"""

import base64
import io

import httpx
import numpy as np
from PIL import Image

from receipt_scanner.errors import OCREngineError
from receipt_scanner.utils.logger import get_logger

from .engine import (
    BoundingBox,
    OCREngine,
    OCRResult,
    OCRToken,
    PageMode,
    mean_confidence,
)

logger = get_logger(__name__)

DEFAULT_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"


def _encode_png(image: np.ndarray) -> str:
    buf = io.BytesIO()
    Image.fromarray(image).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _vertices_to_bbox(vertices: list[dict]) -> BoundingBox:
    xs = [int(v.get("x", 0)) for v in vertices] or [0]
    ys = [int(v.get("y", 0)) for v in vertices] or [0]
    return BoundingBox(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def parse_annotation(payload: dict) -> tuple[str, list[OCRToken], float]:
    """Extract text, tokens and mean word confidence from a response.

    A word without its own confidence gets the mean of its symbols.

    Args:
        payload: One element of the ``responses`` array.

    Returns:
        Tuple of (text, tokens, confidence).
    """
    annotation = payload.get("fullTextAnnotation") or {}
    text = annotation.get("text", "")
    tokens: list[OCRToken] = []

    for page in annotation.get("pages", []):
        for block_idx, block in enumerate(page.get("blocks", []), 1):
            for para_idx, paragraph in enumerate(block.get("paragraphs", []), 1):
                for word in paragraph.get("words", []):
                    symbols = word.get("symbols", [])
                    word_text = "".join(s.get("text", "") for s in symbols)
                    if not word_text.strip():
                        continue
                    confs = [float(s.get("confidence", 0.0)) for s in symbols]
                    word_conf = word.get("confidence")
                    if word_conf is None:
                        word_conf = sum(confs) / len(confs) if confs else 0.0
                    tokens.append(
                        OCRToken(
                            text=word_text,
                            confidence=float(word_conf),
                            bbox=_vertices_to_bbox(
                                word.get("boundingBox", {}).get("vertices", [])
                            ),
                            block_num=block_idx,
                            line_num=para_idx,
                        )
                    )

    return text, tokens, mean_confidence(tokens)


class VisionEngine(OCREngine):
    """Cloud OCR engine backed by Google Cloud Vision.

    Args:
        api_key: Vision API key. The engine is unavailable without one.
        endpoint: ``images:annotate`` URL.
        timeout: Request timeout in seconds.
        language_hints: Language hints sent with each request.
        client: Optional shared ``httpx.Client``.
    """

    name = "vision"
    supports_char_whitelist = False

    def __init__(
        self,
        api_key: str | None,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 30.0,
        language_hints: list[str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.language_hints = language_hints or ["en", "fr"]
        self._client = client

    def is_available(self) -> bool:
        return bool(self.api_key)

    def recognize(
        self,
        image: np.ndarray,
        mode: PageMode = PageMode.UNIFORM_BLOCK,
        char_whitelist: str | None = None,
    ) -> OCRResult:
        """Send the image to Cloud Vision and parse the document annotation.

        ``mode`` and ``char_whitelist`` are accepted for interface
        compatibility; Vision has no equivalent knobs.

        Raises:
            OCREngineError: On missing credentials, HTTP or API errors.
        """
        if not self.api_key:
            raise OCREngineError("Vision API key is not configured")

        body = {
            "requests": [
                {
                    "image": {"content": _encode_png(image)},
                    "features": [{"type": "DOCUMENT_TEXT_DETECTION"}],
                    "imageContext": {"languageHints": self.language_hints},
                }
            ]
        }

        try:
            if self._client is not None:
                response = self._client.post(
                    self.endpoint,
                    params={"key": self.api_key},
                    json=body,
                    timeout=self.timeout,
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(
                        self.endpoint, params={"key": self.api_key}, json=body
                    )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise OCREngineError(f"Vision request failed: {exc}") from exc

        responses = data.get("responses") or [{}]
        payload = responses[0]
        if "error" in payload:
            message = payload["error"].get("message", "unknown error")
            raise OCREngineError(f"Vision API error: {message}")

        text, tokens, confidence = parse_annotation(payload)
        logger.info(
            "Vision extracted %d words with average confidence %.2f",
            len(tokens),
            confidence,
        )
        return OCRResult(
            text=text,
            tokens=tokens,
            confidence=confidence,
            language="+".join(self.language_hints),
            engine=self.name,
        )
