"""Tests for OCR engines, layout analysis, and orchestration."""

import json
from dataclasses import replace
from unittest.mock import MagicMock, patch

import httpx
import numpy as np
import pytest
import respx

from receipt_scanner.context import ScanContext
from receipt_scanner.errors import OCREngineError, OCRUnavailable, ScanCancelled
from receipt_scanner.ocr.engine import (
    BoundingBox,
    OCREngine,
    OCRResult,
    OCRToken,
    PageMode,
    mean_confidence,
)
from receipt_scanner.ocr.layout import LayoutAnalyzer
from receipt_scanner.ocr.orchestrator import OCROrchestrator, merge_tokens
from receipt_scanner.ocr.tesseract_engine import TesseractEngine
from receipt_scanner.ocr.vision_engine import (
    DEFAULT_ENDPOINT,
    VisionEngine,
    parse_annotation,
)
from receipt_scanner.utils.config import OCRConfig

PRICE_WHITELIST = "0123456789.,$-"


def _token(
    text: str,
    x: int,
    y: int,
    width: int = 40,
    height: int = 20,
    confidence: float = 0.9,
) -> OCRToken:
    """Create a test token with defaults."""
    return OCRToken(
        text=text,
        confidence=confidence,
        bbox=BoundingBox(x=x, y=y, width=width, height=height),
    )


def _result(
    tokens: list[OCRToken],
    confidence: float | None = None,
    engine: str = "fake",
    text: str | None = None,
) -> OCRResult:
    return OCRResult(
        text=text if text is not None else " ".join(t.text for t in tokens),
        tokens=tokens,
        confidence=mean_confidence(tokens) if confidence is None else confidence,
        language="eng",
        engine=engine,
    )


class FakeEngine(OCREngine):
    """Scripted engine that records every call.

    Results are returned under the engine's own name, as real engines do.
    """

    def __init__(
        self,
        name: str,
        page_result: OCRResult | Exception | None = None,
        region_result: OCRResult | None = None,
        available: bool = True,
        supports_char_whitelist: bool = False,
    ) -> None:
        self.name = name
        self.page_result = page_result
        self.region_result = region_result
        self.available = available
        self.supports_char_whitelist = supports_char_whitelist
        self.calls: list[tuple[PageMode, str | None, tuple[int, ...]]] = []

    def is_available(self) -> bool:
        return self.available

    def recognize(self, image, mode=PageMode.UNIFORM_BLOCK, char_whitelist=None):
        self.calls.append((mode, char_whitelist, image.shape))
        if char_whitelist:
            return replace(self.region_result or _result([]), engine=self.name)
        if isinstance(self.page_result, Exception):
            raise self.page_result
        return replace(self.page_result or _result([], text=""), engine=self.name)


def _mock_tesseract_data() -> dict:
    """Create mock pytesseract output data."""
    return {
        "text": ["", "MILK", "4,99", "", "BREAD"],
        "conf": [-1, 95, 88, -1, 72],
        "left": [0, 10, 200, 0, 10],
        "top": [0, 10, 10, 0, 50],
        "width": [0, 50, 50, 0, 60],
        "height": [0, 20, 20, 0, 20],
        "block_num": [0, 1, 1, 0, 2],
        "line_num": [0, 1, 1, 0, 1],
    }


class _FakeTesseractError(Exception):
    pass


class _FakeTesseractNotFound(Exception):
    pass


class TestBoundingBox:
    """Tests for the BoundingBox data class."""

    def test_edges_and_centre(self) -> None:
        bbox = BoundingBox(x=10, y=20, width=100, height=50)
        assert bbox.right == 110
        assert bbox.bottom == 70
        assert bbox.center_x == 60
        assert bbox.center_y == 45

    def test_overlaps(self) -> None:
        a = BoundingBox(0, 0, 10, 10)
        assert a.overlaps(BoundingBox(5, 5, 10, 10))
        assert not a.overlaps(BoundingBox(10, 0, 10, 10))

    def test_offset(self) -> None:
        moved = BoundingBox(1, 2, 3, 4).offset(10, 20)
        assert moved == BoundingBox(11, 22, 3, 4)


class TestTesseractEngine:
    """Tests for the TesseractEngine class (mocked)."""

    @patch("receipt_scanner.ocr.tesseract_engine.pytesseract")
    def test_recognize(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = "MILK 4,99\nBREAD"
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()
        mock_pytesseract.Output.DICT = "dict"

        engine = TesseractEngine(default_lang="eng+fra")
        result = engine.recognize(np.zeros((100, 300), dtype=np.uint8))

        assert result.text == "MILK 4,99\nBREAD"
        assert [t.text for t in result.tokens] == ["MILK", "4,99", "BREAD"]
        assert result.tokens[0].confidence == pytest.approx(0.95)
        assert result.confidence == pytest.approx((95 + 88 + 72) / 300)
        assert result.engine == "tesseract"
        assert result.language == "eng+fra"

    @patch("receipt_scanner.ocr.tesseract_engine.pytesseract")
    def test_mode_and_whitelist_in_config(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = ""
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()
        mock_pytesseract.Output.DICT = "dict"

        TesseractEngine().recognize(
            np.zeros((20, 20), dtype=np.uint8),
            mode=PageMode.SINGLE_COLUMN,
            char_whitelist="0123",
        )
        config = mock_pytesseract.image_to_data.call_args.kwargs["config"]
        assert config == "--psm 4 -c tessedit_char_whitelist=0123"

    @patch("receipt_scanner.ocr.tesseract_engine.pytesseract")
    def test_failure_raises_engine_error(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.TesseractError = _FakeTesseractError
        mock_pytesseract.TesseractNotFoundError = _FakeTesseractNotFound
        mock_pytesseract.image_to_string.side_effect = _FakeTesseractNotFound()

        with pytest.raises(OCREngineError):
            TesseractEngine().recognize(np.zeros((20, 20), dtype=np.uint8))

    @patch("receipt_scanner.ocr.tesseract_engine.shutil.which", return_value=None)
    def test_unavailable_without_binary(self, _which: MagicMock) -> None:
        assert TesseractEngine().is_available() is False


def _vision_word(
    text: str,
    x: int,
    y: int,
    symbol_confidence: float,
    word_confidence: float | None = None,
) -> dict:
    """Build one word node of a Vision ``fullTextAnnotation``."""
    word = {
        "boundingBox": {
            "vertices": [
                {"x": x, "y": y},
                {"x": x + 50, "y": y},
                {"x": x + 50, "y": y + 20},
                {"x": x, "y": y + 20},
            ]
        },
        "symbols": [{"text": ch, "confidence": symbol_confidence} for ch in text],
    }
    if word_confidence is not None:
        word["confidence"] = word_confidence
    return word


VISION_PAYLOAD = {
    "responses": [
        {
            "fullTextAnnotation": {
                "text": "MILK 4,99\n",
                "pages": [
                    {
                        "blocks": [
                            {
                                "paragraphs": [
                                    {
                                        "words": [
                                            _vision_word("MILK", 10, 10, 0.9),
                                            _vision_word("4,99", 200, 10, 0.5, 0.7),
                                        ]
                                    }
                                ]
                            }
                        ]
                    }
                ],
            }
        }
    ]
}


class TestVisionEngine:
    """Tests for the Cloud Vision engine (HTTP mocked with respx)."""

    def test_parse_annotation(self) -> None:
        text, tokens, confidence = parse_annotation(VISION_PAYLOAD["responses"][0])
        assert text == "MILK 4,99\n"
        assert [t.text for t in tokens] == ["MILK", "4,99"]
        assert tokens[0].confidence == pytest.approx(0.9)
        assert tokens[1].confidence == pytest.approx(0.7)
        assert tokens[1].bbox == BoundingBox(200, 10, 50, 20)
        assert tokens[0].block_num == 1
        assert confidence == pytest.approx(0.8)

    def test_confidence_is_mean_of_words_not_symbols(self) -> None:
        # one long weak word and one short strong word
        payload = {
            "fullTextAnnotation": {
                "text": "BANANES 1,99\n",
                "pages": [
                    {
                        "blocks": [
                            {
                                "paragraphs": [
                                    {
                                        "words": [
                                            _vision_word("BANANES", 10, 10, 0.6),
                                            _vision_word("1", 200, 10, 1.0),
                                        ]
                                    }
                                ]
                            }
                        ]
                    }
                ],
            }
        }
        _, tokens, confidence = parse_annotation(payload)
        assert confidence == pytest.approx(0.8)
        assert confidence == pytest.approx(mean_confidence(tokens))

    def test_unavailable_without_key(self) -> None:
        assert VisionEngine(api_key=None).is_available() is False
        with pytest.raises(OCREngineError):
            VisionEngine(api_key=None).recognize(np.zeros((10, 10), dtype=np.uint8))

    @respx.mock
    def test_recognize_posts_document_request(self) -> None:
        route = respx.post(DEFAULT_ENDPOINT).mock(
            return_value=httpx.Response(200, json=VISION_PAYLOAD)
        )

        engine = VisionEngine(api_key="test-key")
        result = engine.recognize(np.zeros((40, 40), dtype=np.uint8))

        assert route.called
        request = route.calls.last.request
        assert request.url.params["key"] == "test-key"
        body = json.loads(request.content)
        feature = body["requests"][0]["features"][0]
        assert feature["type"] == "DOCUMENT_TEXT_DETECTION"
        assert body["requests"][0]["imageContext"]["languageHints"] == ["en", "fr"]
        assert result.engine == "vision"
        assert result.language == "en+fr"
        assert len(result.tokens) == 2

    @respx.mock
    def test_http_error_raises_engine_error(self) -> None:
        respx.post(DEFAULT_ENDPOINT).mock(return_value=httpx.Response(503))
        with pytest.raises(OCREngineError):
            VisionEngine(api_key="k").recognize(np.zeros((10, 10), dtype=np.uint8))

    @respx.mock
    def test_api_error_raises_engine_error(self) -> None:
        respx.post(DEFAULT_ENDPOINT).mock(
            return_value=httpx.Response(
                200, json={"responses": [{"error": {"message": "quota exceeded"}}]}
            )
        )
        with pytest.raises(OCREngineError, match="quota exceeded"):
            VisionEngine(api_key="k").recognize(np.zeros((10, 10), dtype=np.uint8))

    @respx.mock
    def test_uses_injected_client(self) -> None:
        respx.post(DEFAULT_ENDPOINT).mock(
            return_value=httpx.Response(200, json=VISION_PAYLOAD)
        )
        with httpx.Client() as client:
            engine = VisionEngine(api_key="k", client=client)
            result = engine.recognize(np.zeros((10, 10), dtype=np.uint8))
        assert result.text == "MILK 4,99\n"


class TestLayoutAnalyzer:
    """Tests for band grouping, column detection, and price regions."""

    def test_group_bands_tolerates_jitter(self) -> None:
        tokens = [
            _token("4,99", 300, 12),
            _token("MILK", 10, 10),
            _token("BREAD", 10, 50),
            _token("2%", 60, 8),
        ]
        bands = LayoutAnalyzer().group_bands(tokens)
        assert [[t.text for t in band] for band in bands] == [
            ["MILK", "2%", "4,99"],
            ["BREAD"],
        ]

    def test_group_bands_empty(self) -> None:
        assert LayoutAnalyzer().group_bands([]) == []

    def test_single_column_page(self) -> None:
        tokens = [
            _token("MILK", 10, 10),
            _token("2%", 55, 10),
            _token("BREAD", 10, 50),
            _token("WHITE", 55, 50),
        ]
        assert LayoutAnalyzer().is_multi_column(tokens) is False

    def test_two_column_page(self) -> None:
        tokens = [
            _token("LEFT", 10, 10),
            _token("RIGHT", 400, 10),
            _token("LEFT", 10, 50),
            _token("RIGHT", 400, 50),
        ]
        assert LayoutAnalyzer().is_multi_column(tokens) is True

    def test_price_regions_split_by_gap(self) -> None:
        tokens = [
            _token("MILK", 10, 20),
            _token("4,99", 500, 20),
            _token("3,49", 500, 50),
            _token("12,00", 500, 300),
        ]
        regions = LayoutAnalyzer(price_region_padding=6).find_price_regions(
            tokens, 600, 400
        )
        assert regions == [
            BoundingBox(494, 14, 52, 62),
            BoundingBox(494, 294, 52, 32),
        ]

    def test_price_regions_ignore_left_side(self) -> None:
        tokens = [_token("4,99", 10, 20)]
        assert LayoutAnalyzer().find_price_regions(tokens, 600, 400) == []

    def test_reading_order_rebuilds_text(self) -> None:
        result = _result(
            [
                _token("BREAD", 10, 50, confidence=0.5),
                _token("4,99", 300, 10, confidence=0.8),
                _token("MILK", 10, 10, confidence=0.6),
            ]
        )
        ordered = LayoutAnalyzer().apply_reading_order(result)
        assert ordered.text == "MILK 4,99\nBREAD"
        assert ordered.line_confidences == pytest.approx([0.7, 0.5])
        assert ordered.confidence == pytest.approx((0.5 + 0.8 + 0.6) / 3)

    def test_reading_order_without_tokens(self) -> None:
        result = _result([], text="raw text", confidence=0.4)
        assert LayoutAnalyzer().apply_reading_order(result) is result


class TestMergeTokens:
    """Tests for merging targeted re-reads into page tokens."""

    def test_higher_confidence_replaces(self) -> None:
        base = [_token("4,g9", 100, 10, confidence=0.4)]
        merged = merge_tokens(base, [_token("4,99", 102, 12, confidence=0.9)])
        assert [t.text for t in merged] == ["4,99"]

    def test_lower_confidence_dropped(self) -> None:
        base = [_token("4,99", 100, 10, confidence=0.9)]
        merged = merge_tokens(base, [_token("4.88", 102, 12, confidence=0.5)])
        assert [t.text for t in merged] == ["4,99"]

    def test_non_overlapping_appended(self) -> None:
        base = [_token("MILK", 10, 10)]
        merged = merge_tokens(base, [_token("4,99", 300, 10)])
        assert [t.text for t in merged] == ["MILK", "4,99"]


class TestOCROrchestrator:
    """Tests for engine selection, fallbacks, and price re-reads."""

    image = np.zeros((400, 600), dtype=np.uint8)

    def _single_column_tokens(self, confidence: float) -> list[OCRToken]:
        return [
            _token("MILK", 10, 10, confidence=confidence),
            _token("4,99", 55, 10, confidence=confidence),
        ]

    def test_confident_primary_accepted(self) -> None:
        primary = FakeEngine("vision", _result(self._single_column_tokens(0.9)))
        fallback = FakeEngine("tesseract", _result(self._single_column_tokens(0.99)))
        context = ScanContext()

        result = OCROrchestrator(primary, fallback).recognize(self.image, context)

        assert result.engine == "vision"
        assert fallback.calls == []
        assert [a.strategy for a in context.engine_attempts] == ["primary"]

    def test_primary_at_threshold_accepted(self) -> None:
        primary = FakeEngine("vision", _result(self._single_column_tokens(0.75)))
        fallback = FakeEngine("tesseract", _result(self._single_column_tokens(0.99)))

        result = OCROrchestrator(primary, fallback).recognize(self.image)

        assert result.engine == "vision"
        assert fallback.calls == []

    def test_weak_primary_loses_to_fallback(self) -> None:
        primary = FakeEngine("vision", _result(self._single_column_tokens(0.5)))
        fallback = FakeEngine("tesseract", _result(self._single_column_tokens(0.8)))

        result = OCROrchestrator(primary, fallback).recognize(self.image)

        assert result.engine == "tesseract"
        assert result.confidence == pytest.approx(0.8)

    def test_weak_primary_still_a_candidate(self) -> None:
        primary = FakeEngine("vision", _result(self._single_column_tokens(0.6)))
        fallback = FakeEngine("tesseract", _result(self._single_column_tokens(0.4)))

        result = OCROrchestrator(primary, fallback).recognize(self.image)

        assert result.engine == "vision"

    def test_unavailable_primary_skipped(self) -> None:
        primary = FakeEngine("vision", available=False)
        fallback = FakeEngine("tesseract", _result(self._single_column_tokens(0.7)))
        context = ScanContext()

        result = OCROrchestrator(primary, fallback).recognize(self.image, context)

        assert result.engine == "tesseract"
        assert context.engine_attempts[0].engine == "vision"
        assert context.engine_attempts[0].error == "unavailable"
        assert primary.calls == []

    def test_failing_primary_recorded(self) -> None:
        primary = FakeEngine("vision", OCREngineError("timeout"))
        fallback = FakeEngine("tesseract", _result(self._single_column_tokens(0.7)))
        context = ScanContext()

        OCROrchestrator(primary, fallback).recognize(self.image, context)

        assert context.engine_attempts[0].error == "timeout"

    def test_no_text_anywhere_raises(self) -> None:
        primary = FakeEngine("vision", OCREngineError("down"))
        fallback = FakeEngine("tesseract")
        with pytest.raises(OCRUnavailable):
            OCROrchestrator(primary, fallback).recognize(self.image)

    def test_no_engines_raises(self) -> None:
        with pytest.raises(OCRUnavailable):
            OCROrchestrator(None, None).recognize(self.image)

    def test_multi_column_runs_single_column_pass(self) -> None:
        tokens = [
            _token("LEFT", 10, 10, confidence=0.6),
            _token("RIGHT", 300, 10, confidence=0.6),
            _token("LEFT", 10, 50, confidence=0.6),
            _token("RIGHT", 300, 50, confidence=0.6),
        ]
        fallback = FakeEngine("tesseract", _result(tokens))
        context = ScanContext()

        OCROrchestrator(None, fallback).recognize(self.image, context)

        modes = [call[0] for call in fallback.calls if call[1] is None]
        assert modes == [PageMode.UNIFORM_BLOCK, PageMode.SINGLE_COLUMN]
        assert [a.strategy for a in context.engine_attempts] == [
            "full_page",
            "single_column",
        ]

    def test_price_column_reread_and_merged(self) -> None:
        page = _result(
            [
                _token("MILK", 20, 20, confidence=0.6),
                _token("4,89", 500, 20, confidence=0.5),
                _token("BREAD", 20, 60, confidence=0.6),
                _token("3,49", 500, 60, confidence=0.6),
            ]
        )
        # region crop coordinates: the region starts at (494, 14)
        region = _result(
            [
                _token("4,99", 6, 6, confidence=0.95),
                _token("3.48", 6, 46, confidence=0.4),
            ]
        )
        fallback = FakeEngine(
            "tesseract", page, region_result=region, supports_char_whitelist=True
        )

        result = OCROrchestrator(None, fallback).recognize(self.image)

        assert result.text == "MILK 4,99\nBREAD 3,49"
        whitelist_calls = [call for call in fallback.calls if call[1]]
        assert whitelist_calls == [(PageMode.UNIFORM_BLOCK, PRICE_WHITELIST, (72, 52))]
        assert result.confidence == pytest.approx((0.6 + 0.95 + 0.6 + 0.6) / 4)

    def test_no_reread_without_whitelist_support(self) -> None:
        page = _result([_token("MILK", 20, 20), _token("4,99", 500, 20)])
        fallback = FakeEngine("tesseract", page, supports_char_whitelist=False)

        OCROrchestrator(None, fallback).recognize(self.image)

        assert all(call[1] is None for call in fallback.calls)

    def test_cancelled_before_ocr(self) -> None:
        fallback = FakeEngine("tesseract", _result(self._single_column_tokens(0.7)))
        context = ScanContext()
        context.cancel()
        with pytest.raises(ScanCancelled):
            OCROrchestrator(None, fallback).recognize(self.image, context)
        assert fallback.calls == []

    def test_from_config(self) -> None:
        config = OCRConfig(vision_enabled=False, accept_confidence=0.9)
        orchestrator = OCROrchestrator.from_config(config)
        assert orchestrator.primary is None
        assert isinstance(orchestrator.fallback, TesseractEngine)
        assert orchestrator.accept_confidence == 0.9

    def test_from_config_with_vision(self) -> None:
        orchestrator = OCROrchestrator.from_config(OCRConfig(vision_api_key="k"))
        assert isinstance(orchestrator.primary, VisionEngine)
        assert orchestrator.primary.is_available() is True
