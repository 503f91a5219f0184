"""Data model shared by every stage of the extraction pipeline.

All objects here belong to a single pipeline run. Values that the
pipeline hands to callers are frozen; absence is always ``None``, never
an empty string.
"""

import base64
import io
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any

import numpy as np
from PIL import Image


class FieldName(StrEnum):
    """Every field of an :class:`IdentityRecord` that extraction recovers."""

    FULL_NAME = "full_name"
    SEX = "sex"
    BIRTH_DATE_ETHIOPIAN = "birth_date_ethiopian"
    BIRTH_DATE_GREGORIAN = "birth_date_gregorian"
    EXPIRY_DATE_ETHIOPIAN = "expiry_date_ethiopian"
    EXPIRY_DATE_GREGORIAN = "expiry_date_gregorian"
    ISSUE_DATE_ETHIOPIAN = "issue_date_ethiopian"
    ISSUE_DATE_GREGORIAN = "issue_date_gregorian"
    PHONE_NUMBER = "phone_number"
    REGION = "region"
    ZONE = "zone"
    WOREDA = "woreda"
    CARD_NUMBER = "card_number"
    NATIONAL_ID = "national_id"
    SERIAL_NUMBER = "serial_number"


class Calendar(StrEnum):
    """Calendar system a date string is expressed in."""

    ETHIOPIAN = "ethiopian"
    GREGORIAN = "gregorian"


DATE_FIELDS: dict[FieldName, tuple[str, Calendar]] = {
    FieldName.BIRTH_DATE_ETHIOPIAN: ("birth", Calendar.ETHIOPIAN),
    FieldName.BIRTH_DATE_GREGORIAN: ("birth", Calendar.GREGORIAN),
    FieldName.EXPIRY_DATE_ETHIOPIAN: ("expiry", Calendar.ETHIOPIAN),
    FieldName.EXPIRY_DATE_GREGORIAN: ("expiry", Calendar.GREGORIAN),
    FieldName.ISSUE_DATE_ETHIOPIAN: ("issue", Calendar.ETHIOPIAN),
    FieldName.ISSUE_DATE_GREGORIAN: ("issue", Calendar.GREGORIAN),
}

ADDRESS_FIELDS = (FieldName.REGION, FieldName.ZONE, FieldName.WOREDA)


def date_field(kind: str, calendar: Calendar) -> FieldName:
    """Return the field name for a date kind (birth/expiry/issue) and calendar."""
    return FieldName(f"{kind}_date_{calendar.value}")


class FieldSource(StrEnum):
    """Where a recovered field value came from."""

    TEXT_LAYER = "text-layer"
    OCR = "ocr"


class ImageSlot(IntEnum):
    """Ordinal positions of the embedded images in an eFayda PDF."""

    PHOTO = 0
    QR_CODE = 1
    FRONT_CARD = 2
    BACK_CARD = 3


class ErrorKind(StrEnum):
    """Kinds of failure an extraction run can report."""

    MALFORMED_DOCUMENT = "malformed_document"
    MISSING_REQUIRED_IMAGE = "missing_required_image"
    FIELD_EXTRACTION_FAILED = "field_extraction_failed"
    FIELD_NORMALIZATION_FAILED = "field_normalization_failed"
    TIMEOUT = "timeout"


class PipelineState(StrEnum):
    """States of the per-document extraction state machine."""

    RECEIVED = "received"
    VALIDATED = "validated"
    TEXT_LAYER_EXTRACTED = "text_layer_extracted"
    IMAGES_LOCATED = "images_located"
    OCR_EXTRACTED = "ocr_extracted"
    NORMALIZED = "normalized"
    COMPLETE = "complete"
    REJECTED = "rejected"


class Sex(StrEnum):
    """Sex as printed on the card, with its Amharic label."""

    MALE = "Male"
    FEMALE = "Female"

    @property
    def amharic(self) -> str:
        return "ወንድ" if self is Sex.MALE else "ሴት"


@dataclass(frozen=True)
class RawDocument:
    """The ingested PDF bytes and the text layer derived from them."""

    data: bytes
    text: str
    filename: str = "document.pdf"
    page_count: int = 1


@dataclass(frozen=True)
class LocatedImage:
    """An embedded raster image found by scanning the document bytes.

    ``start``/``end`` delimit the image inside the document (end exclusive).
    The raster is only decoded when a consumer needs pixels.
    """

    ordinal: int
    start: int
    end: int
    data: bytes
    image_format: str

    @property
    def size(self) -> int:
        return self.end - self.start

    def to_array(self) -> np.ndarray:
        """Decode the image into an RGB numpy array.

        Raises:
            PIL.UnidentifiedImageError: If the bytes are not a decodable image.
        """
        with Image.open(io.BytesIO(self.data)) as img:
            return np.array(img.convert("RGB"))


@dataclass(frozen=True)
class FieldCandidate:
    """A raw value for one field, tagged with where and how it was found.

    ``confidence`` is the 1-based rank of the strategy that produced the
    value within that field's chain; lower is more trustworthy.
    """

    field: FieldName
    value: Any
    source: FieldSource
    confidence: int
    strategy: str


@dataclass(frozen=True)
class BilingualText:
    """The same text in Amharic (Ethiopic script) and English."""

    amharic: str
    english: str

    def to_dict(self) -> dict[str, str]:
        return {"amharic": self.amharic, "english": self.english}


@dataclass(frozen=True)
class DatePair:
    """One real-world date in both calendars, as canonical ``YYYY/MM/DD``."""

    ethiopian: str | None
    gregorian: str | None

    def to_dict(self) -> dict[str, str | None]:
        return {"ethiopian": self.ethiopian, "gregorian": self.gregorian}


@dataclass(frozen=True)
class Address:
    """Three-level bilingual address."""

    region: BilingualText
    zone: BilingualText
    woreda: BilingualText

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {
            "region": self.region.to_dict(),
            "zone": self.zone.to_dict(),
            "woreda": self.woreda.to_dict(),
        }


@dataclass(frozen=True)
class IdentityRecord:
    """The normalized identity extracted from one eFayda document."""

    full_name: BilingualText
    sex: Sex
    birth_date: DatePair
    expiry_date: DatePair
    phone_number: str
    address: Address
    card_number: str
    national_id: str
    issue_date: DatePair | None = None
    serial_number: str | None = None
    photo: bytes | None = None
    qr_code: bytes | None = None
    field_sources: dict[str, FieldSource] = field(default_factory=dict)

    def to_dict(self, include_images: bool = False) -> dict[str, Any]:
        """Serialize the record to JSON-compatible primitives.

        Args:
            include_images: Embed photo/QR as base64 instead of byte counts.
        """

        def _image(data: bytes | None) -> Any:
            if data is None:
                return None
            if include_images:
                return base64.b64encode(data).decode("ascii")
            return {"bytes": len(data)}

        return {
            "full_name": self.full_name.to_dict(),
            "sex": {"english": self.sex.value, "amharic": self.sex.amharic},
            "birth_date": self.birth_date.to_dict(),
            "expiry_date": self.expiry_date.to_dict(),
            "issue_date": self.issue_date.to_dict() if self.issue_date else None,
            "phone_number": self.phone_number,
            "address": self.address.to_dict(),
            "card_number": self.card_number,
            "national_id": self.national_id,
            "serial_number": self.serial_number,
            "photo": _image(self.photo),
            "qr_code": _image(self.qr_code),
            "field_sources": {k: v.value for k, v in self.field_sources.items()},
        }


@dataclass(frozen=True)
class ExtractionError:
    """One reason a document could not be turned into a record.

    ``field`` is ``None`` for document-scope failures.
    """

    kind: ErrorKind
    field: FieldName | None
    detail: str

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind.value,
            "field": self.field.value if self.field else None,
            "detail": self.detail,
        }


@dataclass
class ExtractionOutcome:
    """Result of one pipeline run: a complete record or the errors."""

    filename: str
    record: IdentityRecord | None
    errors: list[ExtractionError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    states: list[PipelineState] = field(default_factory=list)
    ocr_calls: int = 0
    processing_time_ms: float = 0.0

    @property
    def status(self) -> PipelineState:
        if self.record is not None:
            return PipelineState.COMPLETE
        return PipelineState.REJECTED

    @property
    def is_complete(self) -> bool:
        return self.record is not None
