"""Structural validation of an eFayda PDF before any extraction runs.

Checks the file signature and trailer marker on the raw bytes, then the
length of the text layer and the number of schema markers it contains.
Each check produces a :class:`ValidationResult`; the report fails if any
check fails.
"""

from dataclasses import dataclass, field

from fayda_ocr.utils.config import DocumentConfig
from fayda_ocr.utils.logger import get_logger

logger = get_logger(__name__)

PDF_SIGNATURE = b"%PDF-"


@dataclass
class ValidationResult:
    """Result of a single document check."""

    check_name: str
    is_valid: bool
    message: str


@dataclass
class ValidationReport:
    """Aggregated validation report for a document."""

    all_valid: bool
    results: list[ValidationResult]
    warnings: list[str] = field(default_factory=list)

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.results if not r.is_valid]


class DocumentValidator:
    """Validates that a document looks like an eFayda PDF.

    Args:
        config: Structural expectations (markers, minimum text length).
    """

    def __init__(self, config: DocumentConfig | None = None) -> None:
        self.config = config or DocumentConfig()

    def check_signature(self, data: bytes) -> ValidationResult:
        """Check the ``%PDF-`` header."""
        if data[:1024].lstrip().startswith(PDF_SIGNATURE):
            return ValidationResult("signature", True, "PDF signature present")
        return ValidationResult("signature", False, "missing %PDF- signature")

    def check_structure(self, data: bytes) -> ValidationResult:
        """Check that every configured structure marker occurs in the bytes."""
        missing = [
            marker
            for marker in self.config.structure_markers
            if marker.encode("latin-1") not in data
        ]
        if missing:
            return ValidationResult(
                "structure", False, f"missing structure markers: {', '.join(missing)}"
            )
        return ValidationResult("structure", True, "structure markers present")

    def check_text_length(self, text: str) -> ValidationResult:
        length = len(text.strip())
        if length < self.config.min_text_length:
            return ValidationResult(
                "text_length",
                False,
                f"text layer has {length} characters, "
                f"expected at least {self.config.min_text_length}",
            )
        return ValidationResult("text_length", True, f"{length} characters")

    def check_schema_markers(self, text: str) -> ValidationResult:
        hits = [m for m in self.config.schema_markers if m in text]
        if len(hits) < self.config.min_marker_hits:
            return ValidationResult(
                "schema_markers",
                False,
                f"found {len(hits)} schema markers, "
                f"expected at least {self.config.min_marker_hits}",
            )
        return ValidationResult("schema_markers", True, f"found {', '.join(hits)}")

    def validate_bytes(self, data: bytes) -> ValidationReport:
        """Run the checks that need only the raw bytes."""
        return self._report([self.check_signature(data), self.check_structure(data)])

    def validate_text(self, text: str) -> ValidationReport:
        """Run the checks on the extracted text layer."""
        return self._report(
            [self.check_text_length(text), self.check_schema_markers(text)]
        )

    def validate(self, data: bytes, text: str) -> ValidationReport:
        """Run every check.

        Args:
            data: Raw document bytes.
            text: Text layer extracted from the document.

        Returns:
            Validation report covering all checks.
        """
        return self._report(
            self.validate_bytes(data).results + self.validate_text(text).results
        )

    def _report(self, results: list[ValidationResult]) -> ValidationReport:
        all_valid = all(r.is_valid for r in results)
        logger.info(
            "Document validation: %s (%d checks)",
            "PASSED" if all_valid else "FAILED",
            len(results),
        )
        for result in results:
            if not result.is_valid:
                logger.warning("Check %s failed: %s", result.check_name, result.message)
        return ValidationReport(all_valid=all_valid, results=results)
