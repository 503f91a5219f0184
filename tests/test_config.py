"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from fayda_ocr.utils.config import (
    AppConfig,
    DocumentConfig,
    ExtractionConfig,
    NormalizationConfig,
    OCRConfig,
    PipelineConfig,
    PreprocessingProfile,
    load_config,
)


class TestDocumentConfig:
    """Tests for DocumentConfig defaults."""

    def test_defaults(self) -> None:
        cfg = DocumentConfig()
        assert cfg.min_images == 4
        assert cfg.min_image_bytes == 500
        assert cfg.min_text_length == 100
        assert cfg.min_marker_hits == 2
        assert "FIN" in cfg.schema_markers
        assert cfg.structure_markers == ["%%EOF"]


class TestPreprocessingProfile:
    """Tests for PreprocessingProfile validation."""

    def test_defaults(self) -> None:
        profile = PreprocessingProfile()
        assert profile.crop_top == 0.0
        assert profile.crop_bottom == 1.0
        assert profile.upscale == 1.0
        assert profile.binarize_enabled is False
        assert profile.lang == "eng"

    def test_crop_band_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            PreprocessingProfile(crop_top=0.6, crop_bottom=0.4)

    def test_crop_band_within_unit_interval(self) -> None:
        with pytest.raises(ValidationError):
            PreprocessingProfile(crop_top=0.0, crop_bottom=1.5)

    def test_valid_band(self) -> None:
        profile = PreprocessingProfile(crop_top=0.25, crop_bottom=0.75)
        assert profile.crop_bottom == 0.75


class TestOCRConfig:
    """Tests for OCRConfig routing defaults."""

    def test_defaults(self) -> None:
        cfg = OCRConfig()
        assert cfg.default_lang == "eng+amh"
        assert cfg.tesseract_cmd is None
        assert set(cfg.profiles) == {"front_card", "back_card"}

    def test_digits_read_from_back_card(self) -> None:
        cfg = OCRConfig()
        assert cfg.field_images["national_id"] == 3
        assert cfg.field_images["phone_number"] == 3
        assert cfg.field_profiles["national_id"] == "back_card"

    def test_dates_read_from_front_card(self) -> None:
        cfg = OCRConfig()
        assert cfg.field_images["birth_date_gregorian"] == 2
        assert cfg.field_profiles["expiry_date_ethiopian"] == "front_card"


class TestExtractionAndNormalizationConfig:
    """Tests for window and range defaults."""

    def test_extraction_defaults(self) -> None:
        cfg = ExtractionConfig()
        assert cfg.name_window_chars == 200
        assert cfg.date_keyword_window == 80
        assert cfg.id_keyword_window == 40
        assert cfg.ocr_rank_threshold == 2

    def test_normalization_defaults(self) -> None:
        cfg = NormalizationConfig()
        assert cfg.gregorian_year_range == (1900, 2100)
        assert cfg.ethiopian_year_range == (1890, 2095)
        assert cfg.calendar_tolerance_days == 1

    def test_pipeline_defaults(self) -> None:
        cfg = PipelineConfig()
        assert "national_id" in cfg.mandatory_fields
        assert "serial_number" not in cfg.mandatory_fields
        assert cfg.ocr_workers == 2
        assert cfg.deadline_seconds == 120.0


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.document, DocumentConfig)
        assert isinstance(cfg.ocr, OCRConfig)
        assert isinstance(cfg.pipeline, PipelineConfig)
        assert cfg.log_level == "INFO"

    def test_nested_override(self) -> None:
        cfg = AppConfig(
            extraction=ExtractionConfig(ocr_rank_threshold=1),
            log_level="DEBUG",
        )
        assert cfg.extraction.ocr_rank_threshold == 1
        assert cfg.log_level == "DEBUG"


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_load_project_config(self, config_dir: Path) -> None:
        cfg = load_config(config_dir / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.ocr.default_lang == "eng+amh"
        assert cfg.ocr.profiles["back_card"].upscale == 2.0
        assert cfg.normalization.ethiopian_year_range == (1890, 2095)

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert cfg == AppConfig()

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "document": {"min_images": 2},
            "ocr": {"profiles": {"digits": {"upscale": 3.0, "psm": 7}}},
            "pipeline": {"deadline_seconds": None},
            "log_level": "DEBUG",
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.document.min_images == 2
        assert cfg.ocr.profiles["digits"].psm == 7
        assert cfg.pipeline.deadline_seconds is None
        assert cfg.log_level == "DEBUG"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, AppConfig)

    def test_load_none_defaults_to_standard_path(self) -> None:
        cfg = load_config()
        assert isinstance(cfg, AppConfig)
