"""Tesseract OCR engine wrapper with word-level extraction.

Provides OCR text extraction with bounding boxes, confidence scores,
page segmentation modes, and an optional character whitelist used for
targeted re-reads of price columns.
"""

import shutil

import numpy as np
import pytesseract
from PIL import Image

from receipt_scanner.errors import OCREngineError
from receipt_scanner.utils.logger import get_logger

from .engine import BoundingBox, OCREngine, OCRResult, OCRToken, PageMode

logger = get_logger(__name__)


class TesseractEngine(OCREngine):
    """Wrapper around Tesseract OCR for receipt text extraction.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: Tesseract language string, e.g. ``"eng+fra"``.
    """

    name = "tesseract"
    supports_char_whitelist = True

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng+fra",
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang

    def is_available(self) -> bool:
        return shutil.which(self.tesseract_cmd or "tesseract") is not None

    def recognize(
        self,
        image: np.ndarray,
        mode: PageMode = PageMode.UNIFORM_BLOCK,
        char_whitelist: str | None = None,
    ) -> OCRResult:
        """Extract text from an image with word-level bounding boxes.

        Args:
            image: Input image as a numpy array.
            mode: Page segmentation mode.
            char_whitelist: Characters Tesseract may emit.

        Returns:
            OCRResult containing full text, tokens, and confidence.

        Raises:
            OCREngineError: If Tesseract is missing or fails.
        """
        config = f"--psm {int(mode)}"
        if char_whitelist:
            config += f" -c tessedit_char_whitelist={char_whitelist}"

        pil_image = Image.fromarray(image)
        try:
            text = pytesseract.image_to_string(
                pil_image, lang=self.default_lang, config=config
            )
            data = pytesseract.image_to_data(
                pil_image,
                lang=self.default_lang,
                config=config,
                output_type=pytesseract.Output.DICT,
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise OCREngineError(f"Tesseract failed: {exc}") from exc

        tokens: list[OCRToken] = []
        total_conf = 0.0

        for i in range(len(data["text"])):
            conf = float(data["conf"][i])
            word_text = str(data["text"][i]).strip()

            if conf > 0 and word_text:
                tokens.append(
                    OCRToken(
                        text=word_text,
                        confidence=conf / 100.0,
                        bbox=BoundingBox(
                            x=int(data["left"][i]),
                            y=int(data["top"][i]),
                            width=int(data["width"][i]),
                            height=int(data["height"][i]),
                        ),
                        block_num=int(data["block_num"][i]),
                        line_num=int(data["line_num"][i]),
                    )
                )
                total_conf += conf

        avg_conf = (total_conf / len(tokens) / 100.0) if tokens else 0.0

        logger.info(
            "Tesseract (psm %d) extracted %d words with average confidence %.2f",
            int(mode),
            len(tokens),
            avg_conf,
        )
        return OCRResult(
            text=text,
            tokens=tokens,
            confidence=avg_conf,
            language=self.default_lang,
            engine=self.name,
        )
