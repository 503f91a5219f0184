"""End-to-end extraction pipeline for eFayda identity PDFs.

Sequences validation, the text-layer pass, image location, targeted OCR
and normalization, and decides between a complete
:class:`~fayda_ocr.models.IdentityRecord` and a rejection carrying every
error found. OCR is only dispatched for fields the text layer missed or
recovered with a low rank, one recognition per (image, profile) group,
on a bounded thread pool joined under the per-document deadline.
"""

import time
from collections import defaultdict
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any

from fayda_ocr.extraction.ocr_fallback import OcrFallbackExtractor
from fayda_ocr.extraction.text_layer import TextLayerExtractor
from fayda_ocr.models import (
    ADDRESS_FIELDS,
    Address,
    Calendar,
    DatePair,
    ErrorKind,
    ExtractionError,
    ExtractionOutcome,
    FieldCandidate,
    FieldName,
    FieldSource,
    IdentityRecord,
    ImageSlot,
    LocatedImage,
    PipelineState,
    RawDocument,
    date_field,
)
from fayda_ocr.normalization.ethiopian_calendar import days_between
from fayda_ocr.normalization.normalizer import FieldNormalizer
from fayda_ocr.ocr.image_locator import locate_images
from fayda_ocr.ocr.pdf_handler import PDFHandler, TextLayerSource
from fayda_ocr.ocr.tesseract_engine import TesseractEngine, TextRecognizer
from fayda_ocr.preprocessing.pipeline import FieldPreprocessor
from fayda_ocr.utils.config import AppConfig
from fayda_ocr.utils.logger import get_logger
from fayda_ocr.validation.document_validator import DocumentValidator

logger = get_logger(__name__)

# IdentityRecord cannot be assembled without these
RECORD_FIELDS = (
    FieldName.FULL_NAME,
    FieldName.SEX,
    FieldName.BIRTH_DATE_ETHIOPIAN,
    FieldName.BIRTH_DATE_GREGORIAN,
    FieldName.EXPIRY_DATE_ETHIOPIAN,
    FieldName.EXPIRY_DATE_GREGORIAN,
    FieldName.PHONE_NUMBER,
    *ADDRESS_FIELDS,
    FieldName.CARD_NUMBER,
    FieldName.NATIONAL_ID,
)

# digit fields whose groups must not be reused when rebuilding the FIN
_DIGIT_FIELDS = (FieldName.PHONE_NUMBER, FieldName.CARD_NUMBER)

OcrGroupKey = tuple[int, str]


class DocumentRejected(Exception):
    """Raised inside a run to stop at a terminal document-level failure."""

    def __init__(self, kind: ErrorKind, detail: str) -> None:
        super().__init__(detail)
        self.error = ExtractionError(kind, None, detail)


class IdentityPipeline:
    """Turns eFayda PDF bytes into an identity record or a list of errors.

    Each call to :meth:`process` is an independent run with its own
    working state, so one pipeline instance can serve many documents
    concurrently.

    Args:
        config: Application configuration. Defaults are used when omitted.
        text_source: Text-layer collaborator (pypdf by default).
        engine: Text recognizer (Tesseract by default).
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        text_source: TextLayerSource | None = None,
        engine: TextRecognizer | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.text_source = text_source or PDFHandler()
        self.engine = engine or TesseractEngine(
            tesseract_cmd=self.config.ocr.tesseract_cmd,
            default_lang=self.config.ocr.default_lang,
        )
        self.validator = DocumentValidator(self.config.document)
        self.text_extractor = TextLayerExtractor(self.config.extraction)
        self.ocr = OcrFallbackExtractor(
            self.engine, FieldPreprocessor(self.config.ocr.profiles), self.config
        )
        self.normalizer = FieldNormalizer(self.config.normalization)

        mandatory = [FieldName(f) for f in self.config.pipeline.mandatory_fields]
        self.mandatory_fields = list(dict.fromkeys([*mandatory, *RECORD_FIELDS]))

    # -- public API ----------------------------------------------------------

    def process(
        self,
        data: bytes,
        filename: str = "document.pdf",
        deadline_s: float | None = None,
    ) -> ExtractionOutcome:
        """Run the full pipeline on one document.

        Args:
            data: Raw PDF bytes.
            filename: Display name used in logs and the outcome.
            deadline_s: Seconds allowed for this document. Defaults to
                ``pipeline.deadline_seconds``; ``None`` there disables it.

        Returns:
            Outcome holding either a complete record or the errors.
        """
        start = time.monotonic()
        if deadline_s is None:
            deadline_s = self.config.pipeline.deadline_seconds
        deadline = start + deadline_s if deadline_s is not None else None

        outcome = ExtractionOutcome(filename=filename, record=None)
        outcome.states.append(PipelineState.RECEIVED)
        logger.info("Processing %s (%d bytes)", filename, len(data))

        try:
            self._run(data, filename, outcome, deadline)
        except DocumentRejected as rejection:
            outcome.errors.append(rejection.error)
            logger.warning(
                "%s rejected: %s (%s)",
                filename,
                rejection.error.kind,
                rejection.error.detail,
            )

        if outcome.errors:
            outcome.record = None
            outcome.states.append(PipelineState.REJECTED)
        else:
            outcome.states.append(PipelineState.COMPLETE)

        outcome.processing_time_ms = (time.monotonic() - start) * 1000
        logger.info(
            "%s finished as %s in %.0f ms (%d errors, %d OCR calls)",
            filename,
            outcome.status,
            outcome.processing_time_ms,
            len(outcome.errors),
            outcome.ocr_calls,
        )
        return outcome

    def process_file(
        self, path: Path, deadline_s: float | None = None
    ) -> ExtractionOutcome:
        """Read a PDF from disk and process it."""
        return self.process(Path(path).read_bytes(), Path(path).name, deadline_s)

    def process_many(
        self, items: Iterable[tuple[bytes, str]]
    ) -> list[ExtractionOutcome]:
        """Process several documents concurrently.

        Args:
            items: ``(data, filename)`` pairs.

        Returns:
            Outcomes in input order.
        """
        items = list(items)
        workers = max(1, self.config.pipeline.max_concurrent_documents)
        logger.info("Processing %d documents with %d workers", len(items), workers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(lambda item: self.process(*item), items))

    # -- stages --------------------------------------------------------------

    def _run(
        self,
        data: bytes,
        filename: str,
        outcome: ExtractionOutcome,
        deadline: float | None,
    ) -> None:
        document = self._validate(data, filename)
        outcome.states.append(PipelineState.VALIDATED)
        expected_pages = self.config.document.expected_pages
        if document.page_count != expected_pages:
            message = (
                f"document has {document.page_count} pages, expected {expected_pages}"
            )
            logger.warning("%s: %s", filename, message)
            outcome.warnings.append(message)

        candidates = self.text_extractor.extract(document.text)
        outcome.states.append(PipelineState.TEXT_LAYER_EXTRACTED)

        images = locate_images(
            document.data,
            min_bytes=self.config.document.min_image_bytes,
            min_count=self.config.document.min_images,
        )
        if not images:
            raise DocumentRejected(
                ErrorKind.MISSING_REQUIRED_IMAGE,
                f"fewer than {self.config.document.min_images} embedded images",
            )
        outcome.states.append(PipelineState.IMAGES_LOCATED)

        ocr_failures: dict[FieldName, str] = {}
        groups = self._plan_ocr(candidates, images)
        if groups:
            recovered, ocr_failures = self._run_ocr(
                groups, images, candidates, deadline
            )
            outcome.ocr_calls += len(groups)
            candidates.update(recovered)
            outcome.states.append(PipelineState.OCR_EXTRACTED)

        values, sources = self._normalize(candidates, outcome)
        outcome.states.append(PipelineState.NORMALIZED)

        for field_name in self.mandatory_fields:
            if field_name in candidates:
                continue
            detail = ocr_failures.get(field_name, "not found in text layer or OCR")
            outcome.errors.append(
                ExtractionError(ErrorKind.FIELD_EXTRACTION_FAILED, field_name, detail)
            )
        for field_name, detail in ocr_failures.items():
            if field_name not in self.mandatory_fields:
                outcome.warnings.append(f"{field_name}: {detail}")

        if outcome.errors:
            return

        self._cross_check(values, outcome)
        outcome.record = self._assemble(values, sources, images)

    def _validate(self, data: bytes, filename: str) -> RawDocument:
        report = self.validator.validate_bytes(data)
        if not report.all_valid:
            raise DocumentRejected(
                ErrorKind.MALFORMED_DOCUMENT,
                "; ".join(r.message for r in report.failures),
            )

        try:
            text = self.text_source.extract_text(data)
            page_count = self.text_source.get_page_count(data)
        except Exception as exc:
            logger.error("Text layer extraction failed for %s: %s", filename, exc)
            raise DocumentRejected(
                ErrorKind.MALFORMED_DOCUMENT, f"text layer unavailable: {exc}"
            ) from exc

        report = self.validator.validate_text(text)
        if not report.all_valid:
            raise DocumentRejected(
                ErrorKind.MALFORMED_DOCUMENT,
                "; ".join(r.message for r in report.failures),
            )
        return RawDocument(
            data=data, text=text, filename=filename, page_count=page_count
        )

    def _plan_ocr(
        self,
        candidates: dict[FieldName, FieldCandidate],
        images: list[LocatedImage],
    ) -> dict[OcrGroupKey, list[FieldName]]:
        """Group the fields that need OCR by (image slot, profile)."""
        threshold = self.config.extraction.ocr_rank_threshold
        routes = self.config.ocr
        groups: dict[OcrGroupKey, list[FieldName]] = defaultdict(list)

        for field_name in OcrFallbackExtractor.OCR_FIELDS:
            slot = routes.field_images.get(field_name.value)
            profile = routes.field_profiles.get(field_name.value)
            if slot is None or profile is None or slot >= len(images):
                continue
            candidate = candidates.get(field_name)
            if candidate is not None and candidate.confidence <= threshold:
                continue
            groups[(slot, profile)].append(field_name)

        for (slot, profile), fields in groups.items():
            logger.info(
                "OCR planned on image %d (%s) for: %s",
                slot,
                profile,
                ", ".join(f.value for f in fields),
            )
        return dict(groups)

    def _run_ocr(
        self,
        groups: dict[OcrGroupKey, list[FieldName]],
        images: list[LocatedImage],
        candidates: dict[FieldName, FieldCandidate],
        deadline: float | None,
    ) -> tuple[dict[FieldName, FieldCandidate], dict[FieldName, str]]:
        """Recognize every group concurrently and join under the deadline.

        Returns:
            Tuple of (recovered candidates, failure detail per field whose
            group raised).
        """
        known = {
            f: str(candidates[f].value) for f in _DIGIT_FIELDS if f in candidates
        }
        remaining = self._remaining(deadline)
        if remaining is not None and remaining <= 0:
            raise DocumentRejected(ErrorKind.TIMEOUT, "deadline passed before OCR")

        recovered: dict[FieldName, FieldCandidate] = {}
        failures: dict[FieldName, str] = {}
        executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.pipeline.ocr_workers),
            thread_name_prefix="ocr",
        )
        try:
            futures = {
                executor.submit(
                    self._ocr_group,
                    images[slot],
                    profile,
                    fields,
                    dict(known),
                    remaining or 0,
                ): (slot, profile)
                for (slot, profile), fields in groups.items()
            }
            done, not_done = wait(futures, timeout=remaining)
            if not_done:
                raise DocumentRejected(
                    ErrorKind.TIMEOUT,
                    f"OCR did not finish within the deadline "
                    f"({len(not_done)} of {len(futures)} groups pending)",
                )

            for future in done:
                slot, profile = futures[future]
                try:
                    found = future.result()
                except Exception as exc:
                    logger.error(
                        "OCR failed on image %d (%s): %s", slot, profile, exc
                    )
                    for field_name in groups[(slot, profile)]:
                        failures[field_name] = f"OCR failed: {exc}"
                    continue
                recovered.update({f: c for f, c in found.items() if c is not None})
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if deadline is not None and time.monotonic() > deadline:
            raise DocumentRejected(ErrorKind.TIMEOUT, "deadline exceeded during OCR")

        logger.info(
            "OCR recovered %d of %d requested fields",
            len(recovered),
            sum(len(f) for f in groups.values()),
        )
        return recovered, failures

    def _ocr_group(
        self,
        image: LocatedImage,
        profile: str,
        fields: list[FieldName],
        known: dict[FieldName, str],
        timeout: float,
    ) -> dict[FieldName, FieldCandidate | None]:
        """Recognize one image once and recover every field of the group."""
        text = self.ocr.recognize(image, profile, timeout=timeout)
        results: dict[FieldName, FieldCandidate | None] = {}
        # the phone goes first so its digits are excluded from the FIN
        for field_name in sorted(fields, key=lambda f: f != FieldName.PHONE_NUMBER):
            candidate = self.ocr.extract_field(field_name, text, known)
            results[field_name] = candidate
            if candidate is not None and field_name in _DIGIT_FIELDS:
                known[field_name] = str(candidate.value)
        return results

    def _normalize(
        self,
        candidates: dict[FieldName, FieldCandidate],
        outcome: ExtractionOutcome,
    ) -> tuple[dict[FieldName, Any], dict[str, FieldSource]]:
        values: dict[FieldName, Any] = {}
        sources: dict[str, FieldSource] = {}
        for field_name, candidate in candidates.items():
            result = self.normalizer.normalize(field_name, candidate.value)
            if result.is_valid:
                values[field_name] = result.value
                sources[field_name.value] = candidate.source
                continue
            if field_name in self.mandatory_fields:
                outcome.errors.append(
                    ExtractionError(
                        ErrorKind.FIELD_NORMALIZATION_FAILED,
                        field_name,
                        result.message,
                    )
                )
            else:
                outcome.warnings.append(f"{field_name}: {result.message}")
        return values, sources

    def _cross_check(
        self, values: dict[FieldName, Any], outcome: ExtractionOutcome
    ) -> None:
        """Warn when the two calendars of a date pair name different days."""
        cfg = self.config.normalization
        if not cfg.cross_check_calendars:
            return
        for kind in ("birth", "expiry", "issue"):
            ethiopian = values.get(date_field(kind, Calendar.ETHIOPIAN))
            gregorian = values.get(date_field(kind, Calendar.GREGORIAN))
            if ethiopian is None or gregorian is None:
                continue
            delta = days_between(str(ethiopian), str(gregorian))
            if abs(delta) > cfg.calendar_tolerance_days:
                message = (
                    f"{kind} date calendars disagree by {delta} days "
                    f"({ethiopian} vs {gregorian})"
                )
                logger.warning(message)
                outcome.warnings.append(message)

    def _assemble(
        self,
        values: dict[FieldName, Any],
        sources: dict[str, FieldSource],
        images: list[LocatedImage],
    ) -> IdentityRecord:
        def pair(kind: str) -> DatePair:
            return DatePair(
                ethiopian=values.get(date_field(kind, Calendar.ETHIOPIAN)),
                gregorian=values.get(date_field(kind, Calendar.GREGORIAN)),
            )

        issue = pair("issue")
        return IdentityRecord(
            full_name=values[FieldName.FULL_NAME],
            sex=values[FieldName.SEX],
            birth_date=pair("birth"),
            expiry_date=pair("expiry"),
            issue_date=issue if issue.ethiopian or issue.gregorian else None,
            phone_number=values[FieldName.PHONE_NUMBER],
            address=Address(
                region=values[FieldName.REGION],
                zone=values[FieldName.ZONE],
                woreda=values[FieldName.WOREDA],
            ),
            card_number=values[FieldName.CARD_NUMBER],
            national_id=values[FieldName.NATIONAL_ID],
            serial_number=values.get(FieldName.SERIAL_NUMBER),
            photo=images[ImageSlot.PHOTO].data,
            qr_code=images[ImageSlot.QR_CODE].data,
            field_sources=sources,
        )

    @staticmethod
    def _remaining(deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return deadline - time.monotonic()
