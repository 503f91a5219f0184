"""Tesseract OCR engine wrapper for card sub-images.

Provides text recognition with an average confidence, a per-call
language hint (``eng`` for digits and dates, ``eng+amh`` for mixed
script) and a timeout so a per-document deadline can bound each call.
"""

from dataclasses import dataclass
from typing import Protocol

import numpy as np
import pytesseract
from PIL import Image

from fayda_ocr.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class OCRResult:
    """Recognized text of one sub-image."""

    text: str
    language: str
    confidence: float
    word_count: int


class TextRecognizer(Protocol):
    """Capability: recognize text in an image using a script hint."""

    def recognize(
        self,
        image: np.ndarray,
        lang: str | None = None,
        psm: int = 6,
        timeout: float = 0,
    ) -> OCRResult: ...


class TesseractEngine:
    """Wrapper around Tesseract OCR.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: Default OCR language code.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng+amh",
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang

    def recognize(
        self,
        image: np.ndarray,
        lang: str | None = None,
        psm: int = 6,
        timeout: float = 0,
    ) -> OCRResult:
        """Recognize text in an image.

        Args:
            image: Input image as a numpy array.
            lang: OCR language code. Defaults to the engine default.
            psm: Tesseract page segmentation mode.
            timeout: Seconds before Tesseract is killed; 0 disables it.

        Returns:
            OCRResult with the full text and average word confidence.

        Raises:
            RuntimeError: If Tesseract exceeds ``timeout``.
            pytesseract.TesseractError: If Tesseract fails.
        """
        lang = lang or self.default_lang
        config = f"--psm {psm}"
        pil_image = Image.fromarray(image)

        text = pytesseract.image_to_string(
            pil_image, lang=lang, config=config, timeout=timeout
        )
        data = pytesseract.image_to_data(
            pil_image,
            lang=lang,
            config=config,
            timeout=timeout,
            output_type=pytesseract.Output.DICT,
        )

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) > 0 and word.strip()
        ]
        avg_conf = sum(confidences) / len(confidences) / 100.0 if confidences else 0.0

        logger.info(
            "OCR (%s) recognized %d words with average confidence %.2f",
            lang,
            len(confidences),
            avg_conf,
        )
        return OCRResult(
            text=text,
            language=lang,
            confidence=avg_conf,
            word_count=len(confidences),
        )

    @staticmethod
    def is_available() -> bool:
        """Return whether a working Tesseract binary can be found."""
        try:
            pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError):
            return False
        return True
