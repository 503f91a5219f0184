"""Builders and fakes shared by the test modules."""

import io
import threading
import time
from pathlib import Path

import numpy as np
from PIL import Image

from fayda_ocr.ocr.tesseract_engine import OCRResult
from fayda_ocr.pipeline.orchestrator import IdentityPipeline
from fayda_ocr.utils.config import AppConfig

HEADER = "Ethiopian Digital ID Card\neFayda | National ID\n"

IDENTITY = (
    "ሙሉ ስም | Full Name\n"
    "5792 0342 9763 7405\n"
    "እሴት ፀጋይ ገብረመስቀል\n"
    "Eset Tsegay Gebremeskel\n"
    "ጾታ | Sex\n"
    "ሴት | Female\n"
)

DATES = (
    "የትውልድ ቀን | Date of Birth\n"
    "1982/01/10 | 20/09/1989\n"
    "የሚያበቃበት ቀን | Date of Expiry\n"
    "2026/01/05 | 15/09/2033\n"
    "የተሰጠበት ቀን | Date of Issue\n"
    "2018/04/27 | 2026/Jan/05\n"
)

CONTACT = "ስልክ | Phone Number\n0912345678\nFIN 4829 1736 5502\n"

ADDRESS = (
    "አድራሻ | Address\n"
    "አዲስ አበባ\n"
    "Addis Ababa\n"
    "ቦሌ\n"
    "Bole\n"
    "ወረዳ 03\n"
    "Woreda 03\n"
    "Serial No: 1234567\n"
)


def build_text_layer(
    dates: str = DATES, contact: str = CONTACT, identity: str = IDENTITY
) -> str:
    """Assemble an eFayda-like text layer from its sections."""
    return HEADER + identity + dates + contact + ADDRESS


def make_jpeg(seed: int = 0, width: int = 80, height: int = 60) -> bytes:
    """Encode a noise image as JPEG; noise keeps it well above 500 bytes."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format="JPEG", quality=90)
    return buf.getvalue()


def make_pdf(image_count: int = 4) -> bytes:
    """Build PDF-like bytes with JPEG streams embedded in document order."""
    parts = [b"%PDF-1.4\n"]
    for i in range(image_count):
        parts.append(
            f"{i + 1} 0 obj\n<< /Type /XObject /Subtype /Image "
            f"/Filter /DCTDecode >>\nstream\n".encode("ascii")
        )
        parts.append(make_jpeg(seed=i))
        parts.append(b"\nendstream\nendobj\n")
    parts.append(b"trailer\n<< /Root 1 0 R >>\n%%EOF\n")
    return b"".join(parts)


class FakeTextSource:
    """Text-layer source returning a fixed text, or raising."""

    def __init__(
        self, text: str = "", error: Exception | None = None, page_count: int = 1
    ) -> None:
        self.text = text
        self.error = error
        self.page_count = page_count

    def extract_text(self, pdf_source: Path | bytes) -> str:
        if self.error is not None:
            raise self.error
        return self.text

    def get_page_count(self, pdf_source: Path | bytes) -> int:
        return self.page_count


class FakeRecognizer:
    """Recognizer that returns a fixed text and records every call."""

    def __init__(
        self,
        text: str = "",
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.text = text
        self.delay = delay
        self.error = error
        self.calls: list[dict[str, object]] = []
        self._lock = threading.Lock()

    def recognize(
        self,
        image: np.ndarray,
        lang: str | None = None,
        psm: int = 6,
        timeout: float = 0,
    ) -> OCRResult:
        with self._lock:
            self.calls.append({"shape": image.shape, "lang": lang, "psm": psm})
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return OCRResult(
            text=self.text,
            language=lang or "eng",
            confidence=0.9,
            word_count=len(self.text.split()),
        )


def make_pipeline(
    text: str,
    recognizer: FakeRecognizer | None = None,
    config: AppConfig | None = None,
) -> IdentityPipeline:
    """Pipeline wired to fake text-layer and OCR collaborators."""
    return IdentityPipeline(
        config=config or AppConfig(),
        text_source=FakeTextSource(text),
        engine=recognizer or FakeRecognizer(),
    )

