"""Field recovery from OCR output of a single card sub-image.

Used only for fields the text layer missed or recovered with a low
rank. Recognition is the expensive part and is exposed separately
(:meth:`OcrFallbackExtractor.recognize`) so one recognized text can
serve every field read from the same image and profile; the per-field
strategy chains are pure functions of that text.
"""

import re
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from functools import partial

import numpy as np

from fayda_ocr.models import (
    DATE_FIELDS,
    Calendar,
    FieldCandidate,
    FieldName,
    FieldSource,
    LocatedImage,
)
from fayda_ocr.normalization.normalizer import month_from_name, normalize_date
from fayda_ocr.ocr.tesseract_engine import TextRecognizer
from fayda_ocr.preprocessing.pipeline import FieldPreprocessor
from fayda_ocr.utils.config import AppConfig
from fayda_ocr.utils.logger import get_logger

from .patterns import DATE_LABELS, DATE_PATTERNS
from .strategies import Strategy, StrategyChain

logger = get_logger(__name__)

# FIN is often read as EIN on the back card
_KEYWORD_ID_RE = re.compile(
    r"\b[FE]IN\b[\s:.\-]*(\d{4})[ \t]+(\d{4})[ \t]+(\d{4})(?!\d)"
)
_STRICT_ID_RE = re.compile(r"(?<!\d)(?<!\d )(\d{4}) (\d{4}) (\d{4})(?![ ]?\d)")
_TOLERANT_ID_RE = re.compile(
    r"(?<!\d)(\d{4})[ \t\-]{1,3}(\d{4})[ \t\-]{1,3}(\d{4})\d?(?!\d)"
    r"(?![ \t\-]{1,3}\d{4}(?!\d))"
)
_MERGED_ID_RE = re.compile(r"(?<!\d)(\d{4})(\d{4})(\d{4})(?!\d)")
_DIGIT_TOKEN_RE = re.compile(r"\d+")
_DATE_SHAPE_RE = re.compile(r"\d{1,4}\s*[/.]\s*\w{1,4}\s*[/.]\s*\d{1,4}")

_PHONE_LABEL_RE = re.compile(r"Phone|ስልክ", re.IGNORECASE)
_STRICT_PHONE_RE = re.compile(r"(?<!\d)0[79]\d{8}(?!\d)")
_TOLERANT_PHONE_RE = re.compile(
    r"(?<!\d)(?:\+?251[ \t\-]?|0)([79]\d{2})[ \t\-]?(\d{3})[ \t\-]?(\d{3})(?!\d)"
)

_YEAR = r"(\d[ ]?\d[ ]?\d[ ]?\d)"
_SEP = r"[ ]*[/.\-][ ]*"
_TOLERANT_YMD_RE = re.compile(
    rf"(?<!\d){_YEAR}{_SEP}([A-Za-z0-9]{{1,4}}){_SEP}(\d{{1,2}})(?!\d)"
)
_TOLERANT_DMY_RE = re.compile(
    rf"(?<!\d)(\d{{1,2}}){_SEP}(\d{{1,2}}){_SEP}{_YEAR}(?!\d)"
)

_PROFILE_FOR_UNKNOWN = "front_card"


@dataclass(frozen=True)
class OcrDate:
    """A date found in OCR output, cleaned of stray spaces."""

    start: int
    raw: str
    year: int
    shape: str  # "dmy", "ymd" or "ymd_named"
    line: int = 0


# --- national identifier ------------------------------------------------------


def _known_digit_strings(known: Mapping[FieldName, str]) -> list[str]:
    """Digits of already-known field values, separators removed."""
    strings = []
    for value in known.values():
        digits = "".join(_DIGIT_TOKEN_RE.findall(value or ""))
        if digits:
            strings.append(digits)
    return strings


def _is_known(value: str, known_digits: list[str]) -> bool:
    digits = value.replace(" ", "")
    return any(digits in known for known in known_digits)


def keyword_national_id(text: str) -> str | None:
    """``FIN``/``EIN`` label followed by three clean 4-digit groups."""
    m = _KEYWORD_ID_RE.search(text)
    return " ".join(m.groups()) if m else None


def strict_national_id(text: str, known_digits: list[str]) -> str | None:
    for m in _STRICT_ID_RE.finditer(text):
        value = " ".join(m.groups())
        if not _is_known(value, known_digits):
            return value
    return None


def tolerant_national_id(text: str, known_digits: list[str]) -> str | None:
    """Shape match that survives merged/extra spaces, dashes and a fifth digit."""
    for pattern in (_TOLERANT_ID_RE, _MERGED_ID_RE):
        for m in pattern.finditer(text):
            value = " ".join(m.groups())
            if not _is_known(value, known_digits):
                return value
    return None


def reconstruct_national_id(text: str, known_digits: list[str]) -> str | None:
    """Rebuild the identifier from the digit runs no other field owns.

    Date-shaped substrings, phone-shaped runs and the digits of known
    fields (phone, card number) are removed first; the first three
    remaining 4-digit runs, in document order, form the identifier.
    """
    cleaned = _DATE_SHAPE_RE.sub(" ", text)
    cleaned = _TOLERANT_PHONE_RE.sub(" ", cleaned)
    for digits in known_digits:
        cleaned = re.sub(r"[ \t\-]*".join(digits), " ", cleaned)

    remaining = [t for t in _DIGIT_TOKEN_RE.findall(cleaned) if len(t) == 4]
    if len(remaining) < 3:
        return None
    return " ".join(remaining[:3])


# --- phone --------------------------------------------------------------------


def _phone_digits(m: re.Match[str]) -> str:
    return "0" + "".join(m.groups())


def keyword_phone(text: str, window: int) -> str | None:
    for label in _PHONE_LABEL_RE.finditer(text):
        m = _TOLERANT_PHONE_RE.search(text[label.end() : label.end() + window])
        if m:
            return _phone_digits(m)
    return None


def strict_phone(text: str) -> str | None:
    m = _STRICT_PHONE_RE.search(text)
    return m.group() if m else None


def tolerant_phone(text: str) -> str | None:
    m = _TOLERANT_PHONE_RE.search(text)
    return _phone_digits(m) if m else None


# --- dates --------------------------------------------------------------------


def scan_dates(text: str, tolerant: bool = False) -> list[OcrDate]:
    """Find dates in OCR text in document order.

    Args:
        text: Recognized text.
        tolerant: Accept split year digits, spaces around separators and
            misread month names.
    """
    spans: list[tuple[int, int]] = []
    found: list[OcrDate] = []

    def add(m: re.Match[str], year: str, month: str, day: str, shape: str) -> None:
        if any(m.start() < end and start < m.end() for start, end in spans):
            return
        spans.append((m.start(), m.end()))
        raw = f"{day}/{month}/{year}" if shape == "dmy" else f"{year}/{month}/{day}"
        line = text.count("\n", 0, m.start())
        found.append(OcrDate(m.start(), raw, int(year), shape, line))

    if not tolerant:
        shapes = ("dmy", "ymd", "ymd_named")
        for (pattern, _), shape in zip(DATE_PATTERNS, shapes):
            for m in pattern.finditer(text):
                first, month, last = m.group().split("/")
                if shape == "dmy":
                    add(m, last, month, first, shape)
                else:
                    add(m, first, month, last, shape)
        return sorted(found, key=lambda d: d.start)

    for m in _TOLERANT_DMY_RE.finditer(text):
        add(m, m.group(3).replace(" ", ""), m.group(2), m.group(1), "dmy")

    for m in _TOLERANT_YMD_RE.finditer(text):
        month = m.group(2)
        if month.isdigit():
            shape = "ymd"
        elif month_from_name(month) is not None:
            shape = "ymd_named"
        else:
            continue
        add(m, m.group(1).replace(" ", ""), month, m.group(3), shape)

    return sorted(found, key=lambda d: d.start)


def classify_calendars(dates: list[OcrDate]) -> list[tuple[OcrDate, Calendar]]:
    """Decide the calendar of each date from its shape.

    Month names and day-first dates are Gregorian; numeric year-first
    dates are Ethiopian. The one exception is a line holding two numeric
    year-first dates with different years (the two sides of an
    ``ethiopian | gregorian`` slot), where the higher year is Gregorian.
    """
    line_years: dict[int, set[int]] = defaultdict(set)
    for d in dates:
        if d.shape == "ymd":
            line_years[d.line].add(d.year)
    gregorian_years = {
        line: max(years) for line, years in line_years.items() if len(years) > 1
    }

    result = []
    for d in dates:
        if d.shape in ("dmy", "ymd_named"):
            result.append((d, Calendar.GREGORIAN))
        elif gregorian_years.get(d.line) == d.year:
            result.append((d, Calendar.GREGORIAN))
        else:
            result.append((d, Calendar.ETHIOPIAN))
    return result


def _context_end(text: str, kind: str, start: int, window: int) -> int:
    """End of a label's context: the window, cut at the next other date label."""
    end = start + window
    for other, pattern in DATE_LABELS.items():
        if other == kind:
            continue
        m = pattern.search(text, start)
        if m:
            end = min(end, m.start())
    return end


def keyword_date(
    text: str, kind: str, calendar: Calendar, window: int, tolerant: bool
) -> str | None:
    dates = classify_calendars(scan_dates(text, tolerant))
    for label in DATE_LABELS[kind].finditer(text):
        end = _context_end(text, kind, label.end(), window)
        for d, cal in dates:
            if cal == calendar and label.end() <= d.start < end:
                return d.raw
    return None


def year_order_date(
    text: str, kind: str, calendar: Calendar, year_range: tuple[int, int]
) -> str | None:
    """Earliest plausible date for birth, latest for expiry.

    A single plausible date cannot be placed by order, so at least two
    distinct ones are required.
    """
    if kind == "issue":
        return None
    plausible: dict[str, str] = {}
    for d, cal in classify_calendars(scan_dates(text, tolerant=True)):
        if cal != calendar:
            continue
        result = normalize_date(d.raw, calendar, year_range)
        if result.is_valid:
            plausible.setdefault(result.value, d.raw)
    if len(plausible) < 2:
        return None
    ordered = sorted(plausible)
    return plausible[ordered[0] if kind == "birth" else ordered[-1]]


class OcrFallbackExtractor:
    """Recognizes card sub-images and recovers fields from the output.

    Args:
        engine: Text recognizer (Tesseract by default in production).
        preprocessor: Applies the per-field preprocessing profiles.
        config: Application configuration.
    """

    OCR_FIELDS = (FieldName.NATIONAL_ID, FieldName.PHONE_NUMBER, *DATE_FIELDS)

    def __init__(
        self,
        engine: TextRecognizer,
        preprocessor: FieldPreprocessor | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.engine = engine
        self.preprocessor = preprocessor or FieldPreprocessor(
            self.config.ocr.profiles
        )

    def profile_for(self, field_name: FieldName) -> str:
        profiles = self.config.ocr.field_profiles
        return profiles.get(field_name.value, _PROFILE_FOR_UNKNOWN)

    def recognize(
        self,
        image: LocatedImage | np.ndarray,
        profile_name: str,
        timeout: float = 0,
    ) -> str:
        """Preprocess an image with a profile and run recognition once.

        Args:
            image: Located sub-image or an already decoded array.
            profile_name: Preprocessing profile to apply.
            timeout: Seconds allowed for recognition; 0 disables it.

        Returns:
            Recognized text (possibly empty).
        """
        array = image.to_array() if isinstance(image, LocatedImage) else image
        processed, _ = self.preprocessor.process(array, profile_name)
        profile = self.preprocessor.profile(profile_name)
        result = self.engine.recognize(
            processed, lang=profile.lang, psm=profile.psm, timeout=timeout
        )
        logger.debug("OCR text (%s): %r", profile_name, result.text)
        return result.text

    def chain(
        self, field_name: FieldName, known: Mapping[FieldName, str] | None = None
    ) -> StrategyChain | None:
        """Build the OCR strategy chain for a field.

        Args:
            field_name: Target field.
            known: Raw values of other fields whose digits must not be
                reused (phone number, card number).

        Returns:
            The chain, or ``None`` for fields OCR does not recover.
        """
        known = {k: v for k, v in (known or {}).items() if k != field_name}
        windows = self.config.extraction

        def chain(*strategies: Strategy) -> StrategyChain:
            return StrategyChain(field_name, FieldSource.OCR, list(strategies))

        if field_name == FieldName.NATIONAL_ID:
            digits = _known_digit_strings(known)
            return chain(
                Strategy("keyword", keyword_national_id),
                Strategy(
                    "strict_shape", partial(strict_national_id, known_digits=digits)
                ),
                Strategy(
                    "tolerant_shape", partial(tolerant_national_id, known_digits=digits)
                ),
                Strategy(
                    "digit_runs", partial(reconstruct_national_id, known_digits=digits)
                ),
            )

        if field_name == FieldName.PHONE_NUMBER:
            return chain(
                Strategy(
                    "keyword", partial(keyword_phone, window=windows.id_keyword_window)
                ),
                Strategy("strict_shape", strict_phone),
                Strategy("tolerant_shape", tolerant_phone),
            )

        if field_name in DATE_FIELDS:
            kind, calendar = DATE_FIELDS[field_name]
            if calendar == Calendar.ETHIOPIAN:
                year_range = self.config.normalization.ethiopian_year_range
            else:
                year_range = self.config.normalization.gregorian_year_range
            keyword = partial(
                keyword_date,
                kind=kind,
                calendar=calendar,
                window=windows.date_keyword_window,
            )
            return chain(
                Strategy("keyword", partial(keyword, tolerant=False)),
                Strategy("keyword_tolerant", partial(keyword, tolerant=True)),
                Strategy(
                    "year_order",
                    partial(
                        year_order_date,
                        kind=kind,
                        calendar=calendar,
                        year_range=year_range,
                    ),
                ),
            )

        return None

    def extract_field(
        self,
        field_name: FieldName,
        ocr_text: str,
        known: Mapping[FieldName, str] | None = None,
    ) -> FieldCandidate | None:
        """Recover one field from already recognized text.

        Returns:
            Candidate tagged ``ocr``, or ``None`` when every strategy fails.
        """
        field_chain = self.chain(field_name, known)
        if field_chain is None:
            logger.debug("No OCR strategies for %s", field_name)
            return None
        return field_chain.run(ocr_text)

    def extract(
        self,
        image: LocatedImage | np.ndarray,
        field_name: FieldName,
        known: Mapping[FieldName, str] | None = None,
        timeout: float = 0,
    ) -> FieldCandidate | None:
        """Recognize an image and recover a single field from it."""
        text = self.recognize(image, self.profile_for(field_name), timeout=timeout)
        return self.extract_field(field_name, text, known)
