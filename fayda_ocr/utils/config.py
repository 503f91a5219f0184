"""Configuration management for the Fayda ID extraction pipeline.

Loads and validates YAML configuration with defaults for document
validation, OCR profiles, extraction thresholds, normalization ranges
and pipeline concurrency. Every threshold reaches the components through
these models rather than module-level constants, so a schema revision
is a config change.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationInfo, field_validator

logger = logging.getLogger(__name__)


class DocumentConfig(BaseModel):
    """Structural expectations for an eFayda PDF."""

    min_images: int = 4
    min_image_bytes: int = 500
    min_text_length: int = 100
    schema_markers: list[str] = Field(
        default_factory=lambda: [
            "Ethiopian Digital ID Card",
            "National ID",
            "eFayda",
            "FIN",
            "FAN",
        ]
    )
    min_marker_hits: int = 2
    structure_markers: list[str] = Field(default_factory=lambda: ["%%EOF"])
    expected_pages: int = 1


class PreprocessingProfile(BaseModel):
    """Image preparation and Tesseract settings for one group of fields."""

    crop_top: float = 0.0
    crop_bottom: float = 1.0
    upscale: float = 1.0
    contrast_enabled: bool = True
    clahe_clip_limit: float = 2.0
    clahe_tile_size: int = 8
    sharpen_enabled: bool = False
    sharpen_amount: float = 1.0
    binarize_enabled: bool = False
    lang: str = "eng"
    psm: int = 6

    @field_validator("crop_bottom")
    @classmethod
    def _crop_band_ordered(cls, value: float, info: ValidationInfo) -> float:
        top = info.data.get("crop_top", 0.0)
        if not 0.0 <= top < value <= 1.0:
            raise ValueError(
                f"crop band must satisfy 0 <= top < bottom <= 1, got {top}..{value}"
            )
        return value


def _default_profiles() -> dict[str, PreprocessingProfile]:
    return {
        "front_card": PreprocessingProfile(upscale=1.5, sharpen_enabled=True),
        "back_card": PreprocessingProfile(
            upscale=2.0, sharpen_enabled=True, sharpen_amount=1.5
        ),
    }


_DATE_FIELDS = (
    "birth_date_ethiopian",
    "birth_date_gregorian",
    "expiry_date_ethiopian",
    "expiry_date_gregorian",
    "issue_date_ethiopian",
    "issue_date_gregorian",
)


class OCRConfig(BaseModel):
    """Configuration for the Tesseract engine and per-field OCR routing."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng+amh"
    profiles: dict[str, PreprocessingProfile] = Field(
        default_factory=_default_profiles
    )
    field_images: dict[str, int] = Field(
        default_factory=lambda: {
            "national_id": 3,
            "phone_number": 3,
            **{name: 2 for name in _DATE_FIELDS},
        }
    )
    field_profiles: dict[str, str] = Field(
        default_factory=lambda: {
            "national_id": "back_card",
            "phone_number": "back_card",
            **{name: "front_card" for name in _DATE_FIELDS},
        }
    )


class ExtractionConfig(BaseModel):
    """Configuration for the text-layer and OCR strategy chains."""

    name_window_chars: int = 200
    date_keyword_window: int = 80
    id_keyword_window: int = 40
    ocr_rank_threshold: int = 2


class NormalizationConfig(BaseModel):
    """Plausibility ranges applied while normalizing recovered values."""

    gregorian_year_range: tuple[int, int] = (1900, 2100)
    ethiopian_year_range: tuple[int, int] = (1890, 2095)
    cross_check_calendars: bool = True
    calendar_tolerance_days: int = 1


class PipelineConfig(BaseModel):
    """Orchestrator policy: mandatory fields, concurrency and deadline."""

    mandatory_fields: list[str] = Field(
        default_factory=lambda: [
            "full_name",
            "sex",
            "birth_date_ethiopian",
            "birth_date_gregorian",
            "expiry_date_ethiopian",
            "expiry_date_gregorian",
            "phone_number",
            "region",
            "zone",
            "woreda",
            "card_number",
            "national_id",
        ]
    )
    ocr_workers: int = 2
    max_concurrent_documents: int = 2
    deadline_seconds: float | None = 120.0


class AppConfig(BaseModel):
    """Top-level application configuration."""

    document: DocumentConfig = Field(default_factory=DocumentConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
