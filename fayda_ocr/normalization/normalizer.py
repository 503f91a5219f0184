"""Canonicalization of recovered raw field values.

Every normalizer is a pure function that returns a
:class:`NormalizationResult` instead of raising, and every normalizer is
idempotent: feeding a normalized value back in returns it unchanged.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any

from fayda_ocr.models import (
    DATE_FIELDS,
    BilingualText,
    Calendar,
    FieldName,
    Sex,
)
from fayda_ocr.utils.config import NormalizationConfig
from fayda_ocr.utils.logger import get_logger

from .ethiopian_calendar import ethiopian_month_length

logger = get_logger(__name__)

ETHIOPIC_RE = re.compile(r"[\u1200-\u137F\u2D80-\u2DDF\uAB00-\uAB2F]")
LATIN_RE = re.compile(r"[A-Za-z]")

MONTHS: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# Month names as Tesseract tends to misread them on card crops
MONTH_MISREADS: dict[str, int] = {
    "jdan": 1,
    "jam": 1,
    "feh": 2,
    "rnar": 3,
    "apn": 4,
    "rnay": 5,
    "jui": 7,
    "au9": 8,
    "5ep": 9,
    "sepl": 9,
    "0ct": 10,
    "oc1": 10,
    "n0v": 11,
    "dcc": 12,
}

_SEP = r"[/.\-]"
_NUMERIC_YMD = re.compile(rf"^(\d{{4}}){_SEP}(\d{{1,2}}){_SEP}(\d{{1,2}})$")
_NAMED_YMD = re.compile(rf"^(\d{{4}}){_SEP}([A-Za-z0-9]{{3,9}}){_SEP}(\d{{1,2}})$")
_NUMERIC_DMY = re.compile(rf"^(\d{{1,2}}){_SEP}(\d{{1,2}}){_SEP}(\d{{4}})$")
_NAMED_DMY = re.compile(rf"^(\d{{1,2}}){_SEP}([A-Za-z0-9]{{3,9}}){_SEP}(\d{{4}})$")

_PHONE_RE = re.compile(r"^0[79]\d{8}$")
_SERIAL_RE = re.compile(r"^\d{7,8}$")

_SEX_ALIASES: dict[str, Sex] = {
    "male": Sex.MALE,
    "m": Sex.MALE,
    "ወንድ": Sex.MALE,
    "female": Sex.FEMALE,
    "f": Sex.FEMALE,
    "ሴት": Sex.FEMALE,
}


@dataclass
class NormalizationResult:
    """Outcome of normalizing one raw field value."""

    field_name: FieldName
    value: Any
    is_valid: bool
    message: str = ""


def _fail(field_name: FieldName, message: str) -> NormalizationResult:
    logger.debug("Normalization of %s failed: %s", field_name, message)
    return NormalizationResult(field_name, None, False, message)


def _collapse(text: str) -> str:
    return " ".join(text.split())


def month_from_name(name: str) -> int | None:
    """Resolve an English month name or a known OCR misreading of one.

    Accepts three/four letter abbreviations and full names, case-insensitive.
    """
    key = name.strip().lower()
    for prefix in (key, key[:4], key[:3]):
        if prefix in MONTH_MISREADS:
            return MONTH_MISREADS[prefix]
    return MONTHS.get(key[:3])


def parse_date_parts(raw: str) -> tuple[int, int, int, bool] | None:
    """Split a date string into ``(year, month, day, has_month_name)``.

    Whitespace is dropped before matching so OCR artefacts such as a split
    year (``2 0 18/04/27``) or padded separators still parse.
    """
    compact = re.sub(r"\s+", "", raw)

    match = _NUMERIC_YMD.match(compact)
    if match:
        return int(match.group(1)), int(match.group(2)), int(match.group(3)), False

    match = _NUMERIC_DMY.match(compact)
    if match:
        return int(match.group(3)), int(match.group(2)), int(match.group(1)), False

    for pattern, year_idx, day_idx in ((_NAMED_YMD, 1, 3), (_NAMED_DMY, 3, 1)):
        match = pattern.match(compact)
        if match:
            month = month_from_name(match.group(2))
            if month is None:
                return None
            return int(match.group(year_idx)), month, int(match.group(day_idx)), True

    return None


def normalize_date(
    raw: str,
    calendar: Calendar,
    year_range: tuple[int, int],
    field_name: FieldName = FieldName.BIRTH_DATE_GREGORIAN,
) -> NormalizationResult:
    """Canonicalize a date string into ``YYYY/MM/DD``.

    Args:
        raw: Date in ``YYYY/MM/DD``, ``YYYY/Mon/DD`` or ``DD/MM/YYYY`` form,
            with ``/``, ``-`` or ``.`` separators.
        calendar: Calendar the date is expressed in.
        year_range: Inclusive plausible year range for that calendar.
        field_name: Field the value belongs to, for reporting.

    Returns:
        NormalizationResult with the canonical string as value.
    """
    if not raw or not raw.strip():
        return _fail(field_name, "empty date")

    parts = parse_date_parts(raw)
    if parts is None:
        return _fail(field_name, f"unrecognized date format: {raw!r}")
    year, month, day, named = parts

    low, high = year_range
    if not low <= year <= high:
        return _fail(field_name, f"year {year} outside plausible range {low}-{high}")

    if calendar == Calendar.ETHIOPIAN:
        if named:
            return _fail(field_name, "Ethiopian dates never use month names")
        if not 1 <= month <= 13:
            return _fail(field_name, f"Ethiopian month {month} out of range")
        if not 1 <= day <= ethiopian_month_length(year, month):
            return _fail(field_name, f"Ethiopian day {day} invalid for month {month}")
    else:
        try:
            date(year, month, day)
        except ValueError as exc:
            return _fail(field_name, f"invalid Gregorian date: {exc}")

    return NormalizationResult(field_name, f"{year:04d}/{month:02d}/{day:02d}", True)


def normalize_name(raw: str | BilingualText) -> NormalizationResult:
    """Split a bilingual name into its Ethiopic and Latin forms.

    Tokens are assigned by script; no transliteration is attempted, so
    both forms must already be present.
    """
    field_name = FieldName.FULL_NAME
    if isinstance(raw, BilingualText):
        raw = f"{raw.amharic} {raw.english}"

    amharic: list[str] = []
    english: list[str] = []
    for token in raw.split():
        if ETHIOPIC_RE.search(token):
            amharic.append(token)
        elif LATIN_RE.search(token):
            english.append(token)

    if not amharic:
        return _fail(field_name, "missing Amharic form")
    if not english:
        return _fail(field_name, "missing English form")

    return NormalizationResult(
        field_name, BilingualText(" ".join(amharic), " ".join(english)), True
    )


def normalize_phone(raw: str) -> NormalizationResult:
    """Canonicalize a mobile number to the local ``0XXXXXXXXX`` form.

    The ``+251``/``251`` country prefix is mapped to the trunk ``0``. A
    number of the wrong length is rejected, never padded or cut.
    """
    field_name = FieldName.PHONE_NUMBER
    digits = re.sub(r"[\s\-().]", "", raw or "")
    if digits.startswith("+251"):
        digits = "0" + digits[4:]
    elif digits.startswith("251") and len(digits) == 12:
        digits = "0" + digits[3:]

    if not _PHONE_RE.match(digits):
        return _fail(field_name, f"not a local mobile number: {raw!r}")
    return NormalizationResult(field_name, digits, True)


def normalize_address_part(
    field_name: FieldName, raw: BilingualText
) -> NormalizationResult:
    """Trim and pair one bilingual address level.

    The source's own Amharic/English pair is trusted as-is; there is no
    gazetteer lookup.
    """
    amharic = _collapse(raw.amharic or "")
    english = _collapse(raw.english or "")
    if not amharic or not ETHIOPIC_RE.search(amharic):
        return _fail(field_name, "missing Amharic form")
    if not english or not LATIN_RE.search(english):
        return _fail(field_name, "missing English form")
    return NormalizationResult(field_name, BilingualText(amharic, english), True)


def normalize_digit_groups(
    field_name: FieldName, raw: str, groups: int
) -> NormalizationResult:
    """Canonicalize a grouped identifier to ``dddd dddd ...``.

    Args:
        field_name: Field being normalized.
        raw: Digits, optionally separated by spaces or dashes.
        groups: Expected number of 4-digit groups.
    """
    digits = re.sub(r"[\s\-]", "", raw or "")
    if not digits.isdigit() or len(digits) != 4 * groups:
        return _fail(field_name, f"expected {groups} groups of 4 digits: {raw!r}")
    canonical = " ".join(digits[i : i + 4] for i in range(0, len(digits), 4))
    return NormalizationResult(field_name, canonical, True)


def normalize_sex(raw: str) -> NormalizationResult:
    """Map an English or Amharic sex label to :class:`Sex`."""
    field_name = FieldName.SEX
    sex = _SEX_ALIASES.get((raw or "").strip().lower())
    if sex is None:
        return _fail(field_name, f"unknown sex label: {raw!r}")
    return NormalizationResult(field_name, sex, True)


def normalize_serial(raw: str) -> NormalizationResult:
    """Validate a 7-8 digit card serial number."""
    field_name = FieldName.SERIAL_NUMBER
    digits = re.sub(r"\s+", "", raw or "")
    if not _SERIAL_RE.match(digits):
        return _fail(field_name, f"serial number must be 7-8 digits: {raw!r}")
    return NormalizationResult(field_name, digits, True)


class FieldNormalizer:
    """Dispatches a raw field value to the matching normalizer.

    Args:
        config: Plausibility ranges for dates.
    """

    def __init__(self, config: NormalizationConfig | None = None) -> None:
        self.config = config or NormalizationConfig()

    def year_range(self, calendar: Calendar) -> tuple[int, int]:
        if calendar == Calendar.ETHIOPIAN:
            return self.config.ethiopian_year_range
        return self.config.gregorian_year_range

    def normalize(self, field_name: FieldName, raw: Any) -> NormalizationResult:
        """Normalize one raw value.

        Args:
            field_name: Field the value was recovered for.
            raw: Raw value as produced by an extractor.

        Returns:
            NormalizationResult for the field.
        """
        if field_name in DATE_FIELDS:
            _, calendar = DATE_FIELDS[field_name]
            return normalize_date(raw, calendar, self.year_range(calendar), field_name)
        if field_name == FieldName.FULL_NAME:
            return normalize_name(raw)
        if field_name == FieldName.SEX:
            return normalize_sex(raw)
        if field_name == FieldName.PHONE_NUMBER:
            return normalize_phone(raw)
        if field_name in (FieldName.REGION, FieldName.ZONE, FieldName.WOREDA):
            return normalize_address_part(field_name, raw)
        if field_name == FieldName.CARD_NUMBER:
            return normalize_digit_groups(field_name, raw, 4)
        if field_name == FieldName.NATIONAL_ID:
            return normalize_digit_groups(field_name, raw, 3)
        if field_name == FieldName.SERIAL_NUMBER:
            return normalize_serial(raw)
        return _fail(field_name, "no normalizer for field")
