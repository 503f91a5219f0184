"""Field recovery from the PDF plain-text layer.

Regex and positional heuristics over the linear text that a PDF text
extractor produces. The long card number is located first and used as
the anchor for the bilingual name; every other field has its own ordered
strategy chain.
"""

import re
from functools import partial

from fayda_ocr.models import (
    ADDRESS_FIELDS,
    DATE_FIELDS,
    BilingualText,
    Calendar,
    FieldCandidate,
    FieldName,
    FieldSource,
)
from fayda_ocr.utils.config import ExtractionConfig
from fayda_ocr.utils.logger import get_logger

from .patterns import (
    DATE_LABELS,
    ETHIOPIC_LETTERS,
    DateMatch,
    DigitRun,
    Line,
    digit_runs,
    ethiopic_token_count,
    find_dates,
    latin_name_token_count,
    split_lines,
)
from .strategies import Strategy, StrategyChain

logger = get_logger(__name__)

_FIN_LABEL_RE = re.compile(r"\bFIN\b")
_PHONE_RE = re.compile(r"(?<!\d)0[79]\d{8}(?!\d)")
_PHONE_INTL_RE = re.compile(
    r"(?<![\d+])\+?251[\s\-]?[79]\d{2}[\s\-]?\d{3}[\s\-]?\d{3}(?!\d)"
)

_SEX_LABEL_RE = re.compile(r"ጾታ|\bSex\b")
_SEX_TOKEN_RE = re.compile(
    rf"(?<![{ETHIOPIC_LETTERS}])(ወንድ|ሴት)(?![{ETHIOPIC_LETTERS}])|\b(Male|Female)\b"
)

_SERIAL_KEYWORD_RE = re.compile(
    r"(?:Serial(?:\s*No\.?)?|S/N)\s*[:.]?\s*(\d{7,8})(?!\d)", re.IGNORECASE
)
_SERIAL_EXCLUDED_PREFIXES = ("09", "19", "20")

_ADDRESS_LABEL_RE = re.compile(r"አድራሻ|\bAddress\b")
_ETHIOPIC_PHRASE_RE = re.compile(
    rf"[{ETHIOPIC_LETTERS}]+(?:[ \t]+[{ETHIOPIC_LETTERS}]+)*"
)
_LATIN_PHRASE_RE = re.compile(r"[A-Z][A-Za-z'\-]*(?:[ \t]+[A-Z][A-Za-z'\-]*)*")
_HAS_ETHIOPIC_RE = re.compile(rf"[{ETHIOPIC_LETTERS}]")
_HAS_LATIN_RE = re.compile(r"[A-Za-z]")

_LEVEL_LABELS: dict[FieldName, re.Pattern[str]] = {
    FieldName.REGION: re.compile(r"ክልል|\bRegion\b"),
    FieldName.ZONE: re.compile(r"ዞን|\bZone\b"),
}
_WOREDA_AMHARIC_RE = re.compile(rf"[{ETHIOPIC_LETTERS}]+[ \t]*(?:ክ/ከተማ|ወረዳ)")
_WOREDA_ENGLISH_RE = re.compile(r"[A-Z][A-Za-z]+[ \t]+(?:Sub[ \t]+City|Woreda)")


def find_card_number(text: str) -> DigitRun | None:
    """Return the first maximal run of exactly four 4-digit groups."""
    for run in digit_runs(text):
        if run.has_shape(4):
            return run
    return None


# --- bilingual name ---------------------------------------------------------


def _pair_lines(lines: list[Line]) -> BilingualText | None:
    """Find an Ethiopic line paired with a Latin line of equal token count.

    The Latin line is looked for on the next line first, then the
    previous one.
    """
    for i, line in enumerate(lines):
        count = ethiopic_token_count(line.text)
        if not 2 <= count <= 4:
            continue
        for j in (i + 1, i - 1):
            if 0 <= j < len(lines) and latin_name_token_count(lines[j].text) == count:
                return BilingualText(line.text, lines[j].text)
    return None


def _nearest_pair(lines: list[Line]) -> BilingualText | None:
    amharic_idx = next(
        (i for i, ln in enumerate(lines) if 2 <= ethiopic_token_count(ln.text) <= 4),
        None,
    )
    if amharic_idx is None:
        return None
    latin = [
        j for j, ln in enumerate(lines) if 2 <= latin_name_token_count(ln.text) <= 4
    ]
    if not latin:
        return None
    # ties go to the following line
    j = min(latin, key=lambda k: (abs(k - amharic_idx), k < amharic_idx))
    return BilingualText(lines[amharic_idx].text, lines[j].text)


def name_window(
    text: str, anchor: DigitRun | None, window_chars: int
) -> list[Line]:
    """Lines that start within ``window_chars`` after the anchor."""
    if anchor is None:
        return []
    limit = anchor.end + window_chars
    return [ln for ln in split_lines(text) if anchor.end <= ln.start < limit]


# --- dates ------------------------------------------------------------------


def _keyword_date(
    text: str, dates: list[DateMatch], kind: str, calendar: Calendar, window: int
) -> str | None:
    for label in DATE_LABELS[kind].finditer(text):
        for d in dates:
            in_window = label.end() <= d.start <= label.end() + window
            if d.calendar == calendar and in_window:
                return d.raw
    return None


def _positional_date(
    dates: list[DateMatch], kind: str, calendar: Calendar
) -> str | None:
    if kind == "issue":
        return None
    same_calendar = [d for d in dates if d.calendar == calendar]
    index = 0 if kind == "birth" else 1
    return same_calendar[index].raw if len(same_calendar) > index else None


# --- phone, identifiers, sex, serial -----------------------------------------


def _strict_phone(text: str) -> str | None:
    m = _PHONE_RE.search(text)
    return m.group() if m else None


def _international_phone(text: str) -> str | None:
    m = _PHONE_INTL_RE.search(text)
    return m.group() if m else None


def _keyword_national_id(text: str, runs: list[DigitRun], window: int) -> str | None:
    for label in _FIN_LABEL_RE.finditer(text):
        for run in runs:
            if run.has_shape(3) and label.end() <= run.start <= label.end() + window:
                return run.value
    return None


def _shape_national_id(runs: list[DigitRun]) -> str | None:
    return next((run.value for run in runs if run.has_shape(3)), None)


def _sex_token(text: str) -> str | None:
    m = _SEX_TOKEN_RE.search(text)
    return m.group() if m else None


def _labelled_sex(text: str) -> str | None:
    for label in _SEX_LABEL_RE.finditer(text):
        tail = "\n".join(text[label.end() :].split("\n")[:2])
        token = _sex_token(tail)
        if token:
            return token
    return None


def _keyword_serial(text: str) -> str | None:
    m = _SERIAL_KEYWORD_RE.search(text)
    return m.group(1) if m else None


def _standalone_serial(runs: list[DigitRun]) -> str | None:
    for run in runs:
        if len(run.groups) != 1 or len(run.groups[0]) != 7:
            continue
        if not run.groups[0].startswith(_SERIAL_EXCLUDED_PREFIXES):
            return run.groups[0]
    return None


# --- address ----------------------------------------------------------------


def address_block(text: str) -> dict[FieldName, BilingualText]:
    """Read region, zone and woreda from the lines after the address label.

    Lines are consumed as alternating Ethiopic/Latin pairs; a line that
    breaks the alternation ends the block.
    """
    lines = split_lines(text)
    for i, line in enumerate(lines):
        if not _ADDRESS_LABEL_RE.search(line.text):
            continue
        levels: dict[FieldName, BilingualText] = {}
        rest = lines[i + 1 :]
        for level, k in zip(ADDRESS_FIELDS, range(0, 6, 2)):
            if k + 1 >= len(rest):
                break
            amharic, english = rest[k].text, rest[k + 1].text
            if _HAS_LATIN_RE.search(amharic) or not _HAS_ETHIOPIC_RE.search(amharic):
                break
            if _HAS_ETHIOPIC_RE.search(english) or not _HAS_LATIN_RE.search(english):
                break
            levels[level] = BilingualText(amharic, english)
        if levels:
            return levels
    return {}


def _labelled_level(text: str, label_re: re.Pattern[str]) -> BilingualText | None:
    for label in label_re.finditer(text):
        tail = "\n".join(text[label.end() :].split("\n")[:2])
        snippet = label_re.sub(" ", tail)
        amharic = _ETHIOPIC_PHRASE_RE.search(snippet)
        english = _LATIN_PHRASE_RE.search(snippet)
        if amharic and english:
            return BilingualText(amharic.group(), english.group())
    return None


def _woreda_keyword(text: str) -> BilingualText | None:
    amharic = _WOREDA_AMHARIC_RE.search(text)
    english = _WOREDA_ENGLISH_RE.search(text)
    if amharic and english:
        return BilingualText(amharic.group(), english.group())
    return None


class TextLayerExtractor:
    """Recovers field candidates from the plain-text layer.

    Extraction is a pure function of the text: the same input always
    yields the same candidates, and fields that cannot be found are
    simply absent from the result.

    Args:
        config: Window sizes for the anchored strategies.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()

    def chains(self, text: str) -> list[StrategyChain]:
        """Build the strategy chain of every field for one text."""
        cfg = self.config
        runs = digit_runs(text)
        dates = find_dates(text)
        anchor = find_card_number(text)
        window = name_window(text, anchor, cfg.name_window_chars)
        block = address_block(text)

        def chain(field_name: FieldName, *strategies: Strategy) -> StrategyChain:
            return StrategyChain(field_name, FieldSource.TEXT_LAYER, list(strategies))

        chains = [
            chain(
                FieldName.CARD_NUMBER,
                Strategy("four_group_run", lambda _: anchor.value if anchor else None),
            ),
            chain(
                FieldName.FULL_NAME,
                Strategy("anchored_pair", lambda _: _pair_lines(window)),
                Strategy("anchored_any", lambda _: _nearest_pair(window)),
                Strategy("document_pair", lambda t: _pair_lines(split_lines(t))),
            ),
        ]

        for field_name, (kind, calendar) in DATE_FIELDS.items():
            chains.append(
                chain(
                    field_name,
                    Strategy(
                        "keyword",
                        partial(
                            _keyword_date,
                            dates=dates,
                            kind=kind,
                            calendar=calendar,
                            window=cfg.date_keyword_window,
                        ),
                    ),
                    Strategy(
                        "positional",
                        lambda _, k=kind, c=calendar: _positional_date(dates, k, c),
                    ),
                )
            )

        chains += [
            chain(
                FieldName.PHONE_NUMBER,
                Strategy("local_format", _strict_phone),
                Strategy("international_format", _international_phone),
            ),
            chain(
                FieldName.NATIONAL_ID,
                Strategy(
                    "keyword",
                    partial(
                        _keyword_national_id, runs=runs, window=cfg.id_keyword_window
                    ),
                ),
                Strategy("three_group_run", lambda _: _shape_national_id(runs)),
            ),
            chain(
                FieldName.SEX,
                Strategy("label", _labelled_sex),
                Strategy("whole_token", _sex_token),
            ),
            chain(
                FieldName.SERIAL_NUMBER,
                Strategy("keyword", _keyword_serial),
                Strategy("standalone_run", lambda _: _standalone_serial(runs)),
            ),
        ]

        for level in ADDRESS_FIELDS:
            if level == FieldName.WOREDA:
                fallback = Strategy("level_keyword", _woreda_keyword)
            else:
                label_re = _LEVEL_LABELS[level]
                fallback = Strategy(
                    "level_keyword", partial(_labelled_level, label_re=label_re)
                )
            chains.append(
                chain(
                    level,
                    Strategy("address_block", lambda _, lv=level: block.get(lv)),
                    fallback,
                )
            )

        return chains

    def extract(self, text: str) -> dict[FieldName, FieldCandidate]:
        """Run every field chain over the text layer.

        Args:
            text: Plain-text layer of the document.

        Returns:
            Mapping of recovered fields to their candidates.
        """
        candidates: dict[FieldName, FieldCandidate] = {}
        for field_chain in self.chains(text):
            candidate = field_chain.run(text)
            if candidate is not None:
                candidates[field_chain.field_name] = candidate

        missing = [f.value for f in FieldName if f not in candidates]
        logger.info(
            "Text layer yielded %d fields (missing: %s)",
            len(candidates),
            ", ".join(missing) or "none",
        )
        return candidates
