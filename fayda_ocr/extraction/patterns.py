"""Regular expressions and token helpers shared by the field extractors."""

import re
from dataclasses import dataclass

from fayda_ocr.models import Calendar

# Ethiopic syllables (base, supplement and extended blocks); no punctuation or numerals
ETHIOPIC_LETTERS = "\u1200-\u135A\u1380-\u1399\u2D80-\u2DDE"

ETHIOPIC_TOKEN_RE = re.compile(rf"^[{ETHIOPIC_LETTERS}]+$")
LATIN_NAME_TOKEN_RE = re.compile(r"^[A-Z][a-z]+(?:[-'][A-Za-z]+)?$")

DIGIT_RUN_RE = re.compile(r"\d+(?:[ \t]+\d+)*")

DATE_PATTERNS: list[tuple[re.Pattern[str], Calendar]] = [
    (re.compile(r"(?<!\d)\d{1,2}/\d{1,2}/\d{4}(?!\d)"), Calendar.GREGORIAN),
    (re.compile(r"(?<!\d)\d{4}/\d{1,2}/\d{1,2}(?!\d)"), Calendar.ETHIOPIAN),
    (re.compile(r"(?<!\d)\d{4}/[A-Za-z]{3,4}/\d{1,2}(?!\d)"), Calendar.GREGORIAN),
]

DATE_LABELS: dict[str, re.Pattern[str]] = {
    "birth": re.compile(r"Date\s+of\s+Birth|Birth|የትውልድ", re.IGNORECASE),
    "expiry": re.compile(
        r"Date\s+of\s+Expiry|Expiry|Expires|ያበቃል|የሚያበቃበት", re.IGNORECASE
    ),
    "issue": re.compile(r"Date\s+of\s+Issue|Issued?|የተሰጠበት", re.IGNORECASE),
}


@dataclass(frozen=True)
class DigitRun:
    """A maximal run of digit groups separated by horizontal whitespace."""

    start: int
    end: int
    groups: tuple[str, ...]

    def has_shape(self, count: int, width: int = 4) -> bool:
        return len(self.groups) == count and all(len(g) == width for g in self.groups)

    @property
    def value(self) -> str:
        return " ".join(self.groups)


@dataclass(frozen=True)
class DateMatch:
    """A date-shaped substring and the calendar its shape implies."""

    start: int
    end: int
    raw: str
    calendar: Calendar


@dataclass(frozen=True)
class Line:
    start: int
    text: str


def digit_runs(text: str) -> list[DigitRun]:
    """Return every maximal digit run in document order."""
    return [
        DigitRun(m.start(), m.end(), tuple(m.group().split()))
        for m in DIGIT_RUN_RE.finditer(text)
    ]


def find_dates(text: str) -> list[DateMatch]:
    """Find date-shaped substrings in document order.

    Patterns are applied in priority order; a match overlapping one from
    a higher-priority pattern is dropped.
    """
    accepted: list[DateMatch] = []
    for pattern, calendar in DATE_PATTERNS:
        for m in pattern.finditer(text):
            if any(m.start() < d.end and d.start < m.end() for d in accepted):
                continue
            accepted.append(DateMatch(m.start(), m.end(), m.group(), calendar))
    return sorted(accepted, key=lambda d: d.start)


def split_lines(text: str) -> list[Line]:
    """Split text into stripped, non-empty lines with their offsets."""
    lines = []
    for m in re.finditer(r"[^\n]+", text):
        stripped = m.group().strip()
        if stripped:
            lines.append(Line(m.start(), " ".join(stripped.split())))
    return lines


def ethiopic_token_count(line: str) -> int:
    """Token count if every token is an Ethiopic word, else 0."""
    tokens = line.split()
    if tokens and all(ETHIOPIC_TOKEN_RE.match(t) for t in tokens):
        return len(tokens)
    return 0


def latin_name_token_count(line: str) -> int:
    """Token count if every token is a capitalised Latin word, else 0."""
    tokens = line.split()
    if tokens and all(LATIN_NAME_TOKEN_RE.match(t) for t in tokens):
        return len(tokens)
    return 0
