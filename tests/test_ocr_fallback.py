"""Tests for field recovery from OCR output."""

import numpy as np
import pytest
from helpers import FakeRecognizer

from fayda_ocr.extraction.ocr_fallback import (
    OcrFallbackExtractor,
    classify_calendars,
    keyword_national_id,
    reconstruct_national_id,
    scan_dates,
    tolerant_national_id,
)
from fayda_ocr.models import Calendar, FieldName, FieldSource

CARD_NUMBER = "5792 0342 9763 7405"


@pytest.fixture
def extractor() -> OcrFallbackExtractor:
    """Extractor whose recognizer is never called."""
    return OcrFallbackExtractor(FakeRecognizer())


class TestNationalId:
    """Tests for the national identifier chain."""

    def test_keyword_with_clean_groups(self, extractor: OcrFallbackExtractor) -> None:
        candidate = extractor.extract_field(
            FieldName.NATIONAL_ID, "FIN 4829 1736 5502\nPhone 0912345678"
        )
        assert candidate is not None
        assert candidate.value == "4829 1736 5502"
        assert candidate.strategy == "keyword"
        assert candidate.confidence == 1
        assert candidate.source == FieldSource.OCR

    def test_keyword_tolerates_misread_label(self) -> None:
        assert keyword_national_id("EIN: 4829 1736 5502") == "4829 1736 5502"

    def test_strict_shape_skips_card_number(
        self, extractor: OcrFallbackExtractor
    ) -> None:
        text = f"{CARD_NUMBER}\n4829 1736 5502"
        candidate = extractor.extract_field(
            FieldName.NATIONAL_ID, text, {FieldName.CARD_NUMBER: CARD_NUMBER}
        )
        assert candidate.value == "4829 1736 5502"
        assert candidate.strategy == "strict_shape"

    def test_tolerant_shape(self, extractor: OcrFallbackExtractor) -> None:
        candidate = extractor.extract_field(FieldName.NATIONAL_ID, "4829  1736-5502")
        assert candidate.value == "4829 1736 5502"
        assert candidate.strategy == "tolerant_shape"

    def test_tolerant_drops_fifth_digit(self) -> None:
        assert tolerant_national_id("4829 1736 55021", []) == "4829 1736 5502"

    def test_tolerant_rejects_known_digits(self) -> None:
        assert tolerant_national_id(CARD_NUMBER, ["5792034297637405"]) is None

    def test_digit_run_reconstruction(self, extractor: OcrFallbackExtractor) -> None:
        text = "Phone 0912 345 678\n4829\n1736\n5502"
        candidate = extractor.extract_field(
            FieldName.NATIONAL_ID, text, {FieldName.PHONE_NUMBER: "0912345678"}
        )
        assert candidate.value == "4829 1736 5502"
        assert candidate.strategy == "digit_runs"
        assert candidate.confidence == 4

    def test_reconstruction_removes_known_and_dates(self) -> None:
        text = f"{CARD_NUMBER}\n2018/04/27\n4829 | 1736 | 5502"
        assert reconstruct_national_id(text, ["5792034297637405"]) == (
            "4829 1736 5502"
        )

    def test_reconstruction_needs_three_groups(self) -> None:
        assert reconstruct_national_id("4829\n1736", []) is None


class TestPhone:
    """Tests for the phone chain."""

    def test_keyword(self, extractor: OcrFallbackExtractor) -> None:
        candidate = extractor.extract_field(
            FieldName.PHONE_NUMBER, "Phone: +251 912 345 678"
        )
        assert candidate.value == "0912345678"
        assert candidate.strategy == "keyword"

    def test_strict(self, extractor: OcrFallbackExtractor) -> None:
        candidate = extractor.extract_field(FieldName.PHONE_NUMBER, "x 0712345678 y")
        assert candidate.value == "0712345678"
        assert candidate.strategy == "strict_shape"

    def test_tolerant(self, extractor: OcrFallbackExtractor) -> None:
        candidate = extractor.extract_field(FieldName.PHONE_NUMBER, "0912 345 678")
        assert candidate.value == "0912345678"
        assert candidate.strategy == "tolerant_shape"


class TestDates:
    """Tests for OCR date recovery."""

    OCR_TEXT = (
        "Date of Birth\n1982/01/10 | 20/09/1989\n"
        "Date of Expiry\n2026/01/05 | 15/09/2033\n"
    )

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            (FieldName.BIRTH_DATE_ETHIOPIAN, "1982/01/10"),
            (FieldName.BIRTH_DATE_GREGORIAN, "20/09/1989"),
            (FieldName.EXPIRY_DATE_ETHIOPIAN, "2026/01/05"),
            (FieldName.EXPIRY_DATE_GREGORIAN, "15/09/2033"),
        ],
    )
    def test_keyword(
        self, extractor: OcrFallbackExtractor, field: FieldName, value: str
    ) -> None:
        candidate = extractor.extract_field(field, self.OCR_TEXT)
        assert candidate.value == value
        assert candidate.strategy == "keyword"

    def test_issue_date_absent(self, extractor: OcrFallbackExtractor) -> None:
        field = FieldName.ISSUE_DATE_ETHIOPIAN
        assert extractor.extract_field(field, self.OCR_TEXT) is None

    def test_split_year(self, extractor: OcrFallbackExtractor) -> None:
        candidate = extractor.extract_field(
            FieldName.EXPIRY_DATE_ETHIOPIAN, "Date of Expiry\n2 026/01/05"
        )
        assert candidate.value == "2026/01/05"
        assert candidate.strategy == "keyword_tolerant"

    def test_misread_month_name(self, extractor: OcrFallbackExtractor) -> None:
        candidate = extractor.extract_field(
            FieldName.ISSUE_DATE_GREGORIAN, "Date of Issue 2026/0ct/05"
        )
        assert candidate.value == "2026/0ct/05"
        assert candidate.strategy == "keyword_tolerant"

    def test_year_order(self, extractor: OcrFallbackExtractor) -> None:
        text = "20/09/1889 15/09/2033 20/09/1989"
        birth = extractor.extract_field(FieldName.BIRTH_DATE_GREGORIAN, text)
        expiry = extractor.extract_field(FieldName.EXPIRY_DATE_GREGORIAN, text)
        assert birth.value == "20/09/1989"
        assert birth.strategy == "year_order"
        assert expiry.value == "15/09/2033"

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            (FieldName.BIRTH_DATE_ETHIOPIAN, "1982/01/10"),
            (FieldName.BIRTH_DATE_GREGORIAN, "20/09/1989"),
            (FieldName.EXPIRY_DATE_ETHIOPIAN, "2026/01/05"),
            (FieldName.EXPIRY_DATE_GREGORIAN, "15/09/2033"),
            (FieldName.ISSUE_DATE_ETHIOPIAN, "2018/04/27"),
            (FieldName.ISSUE_DATE_GREGORIAN, "2026/Jan/05"),
        ],
    )
    def test_full_front_card(
        self, extractor: OcrFallbackExtractor, field: FieldName, value: str
    ) -> None:
        text = self.OCR_TEXT + "Date of Issue\n2018/04/27 | 2026/Jan/05\n"
        candidate = extractor.extract_field(field, text)
        assert candidate.value == value
        assert candidate.strategy == "keyword"

    def test_year_first_dates_on_separate_lines_are_ethiopian(self) -> None:
        dates = classify_calendars(scan_dates("2018/04/27\n2026/01/05"))
        assert [cal for _, cal in dates] == [Calendar.ETHIOPIAN, Calendar.ETHIOPIAN]

    def test_year_first_pair_on_one_line(self) -> None:
        dates = classify_calendars(scan_dates("2018/04/27 | 2026/01/05"))
        assert [(d.raw, cal) for d, cal in dates] == [
            ("2018/04/27", Calendar.ETHIOPIAN),
            ("2026/01/05", Calendar.GREGORIAN),
        ]

    def test_keyword_keeps_date_at_window_edge(
        self, extractor: OcrFallbackExtractor
    ) -> None:
        text = "Date of Expiry" + " " * 71 + "2026/01/25"
        candidate = extractor.extract_field(FieldName.EXPIRY_DATE_ETHIOPIAN, text)
        assert candidate.value == "2026/01/25"

    def test_keyword_ignores_date_past_window(
        self, extractor: OcrFallbackExtractor
    ) -> None:
        text = "Date of Expiry" + " " * 81 + "2026/01/25"
        field = FieldName.EXPIRY_DATE_ETHIOPIAN
        assert extractor.extract_field(field, text) is None

    def test_year_order_unlabelled_pairs(
        self, extractor: OcrFallbackExtractor
    ) -> None:
        text = "1982/01/10 | 1989/Sep/20\n2026/01/05 | 2033/Sep/15"
        birth = extractor.extract_field(FieldName.BIRTH_DATE_ETHIOPIAN, text)
        expiry = extractor.extract_field(FieldName.EXPIRY_DATE_ETHIOPIAN, text)
        assert (birth.value, birth.strategy) == ("1982/01/10", "year_order")
        assert (expiry.value, expiry.strategy) == ("2026/01/05", "year_order")

    def test_year_order_needs_two_dates(self, extractor: OcrFallbackExtractor) -> None:
        text = "1982/01/10 | 20/09/1989\n"
        assert extractor.extract_field(FieldName.EXPIRY_DATE_GREGORIAN, text) is None
        assert extractor.extract_field(FieldName.BIRTH_DATE_GREGORIAN, text) is None

    def test_tolerant_scan_spaced_separators(self) -> None:
        dates = scan_dates("20 / 09 / 1989", tolerant=True)
        assert [(d.raw, d.shape) for d in dates] == [("20/09/1989", "dmy")]


class TestOcrFallbackExtractor:
    """Tests for recognition and chain routing."""

    def test_recognize_applies_profile(self, sample_image: np.ndarray) -> None:
        recognizer = FakeRecognizer(text="FIN 4829 1736 5502")
        extractor = OcrFallbackExtractor(recognizer)

        text = extractor.recognize(sample_image, "back_card", timeout=3)

        assert text == "FIN 4829 1736 5502"
        assert recognizer.calls == [{"shape": (240, 400), "lang": "eng", "psm": 6}]

    def test_extract_uses_field_profile(self, sample_image: np.ndarray) -> None:
        extractor = OcrFallbackExtractor(FakeRecognizer(text="FIN 4829 1736 5502"))
        candidate = extractor.extract(sample_image, FieldName.NATIONAL_ID)
        assert candidate.value == "4829 1736 5502"

    def test_profile_routing(self, extractor: OcrFallbackExtractor) -> None:
        assert extractor.profile_for(FieldName.NATIONAL_ID) == "back_card"
        assert extractor.profile_for(FieldName.BIRTH_DATE_GREGORIAN) == "front_card"
        assert extractor.profile_for(FieldName.FULL_NAME) == "front_card"

    def test_no_chain_for_text_only_fields(
        self, extractor: OcrFallbackExtractor
    ) -> None:
        assert extractor.chain(FieldName.FULL_NAME) is None
        assert extractor.extract_field(FieldName.SEX, "ሴት Female") is None

    def test_chain_names(self, extractor: OcrFallbackExtractor) -> None:
        chain = extractor.chain(FieldName.NATIONAL_ID)
        assert chain.names == [
            "keyword",
            "strict_shape",
            "tolerant_shape",
            "digit_runs",
        ]
