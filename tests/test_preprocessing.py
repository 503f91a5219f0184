"""Tests for the per-profile image preprocessing."""

import numpy as np
import pytest

from fayda_ocr.preprocessing.filters import (
    apply_clahe,
    binarize_otsu,
    crop_band,
    sharpen,
    to_gray,
    upscale,
)
from fayda_ocr.preprocessing.pipeline import (
    FieldPreprocessor,
    QualityMetrics,
    calculate_contrast,
    calculate_sharpness,
)
from fayda_ocr.utils.config import OCRConfig, PreprocessingProfile


def _make_noisy_image(height: int = 200, width: int = 300) -> np.ndarray:
    """Create a synthetic noisy grayscale image for testing."""
    rng = np.random.default_rng(42)
    base = np.zeros((height, width), dtype=np.uint8)
    base[50:150, 50:250] = 200
    noise = rng.integers(0, 50, size=(height, width), dtype=np.uint8)
    return np.clip(base.astype(np.int16) + noise.astype(np.int16), 0, 255).astype(
        np.uint8
    )


def _make_color_image(height: int = 200, width: int = 300) -> np.ndarray:
    """Create a synthetic RGB color image for testing."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[50:150, 50:250] = (200, 200, 200)
    return image


class TestFilters:
    """Tests for the individual filters."""

    def test_to_gray_color(self) -> None:
        assert to_gray(_make_color_image()).shape == (200, 300)

    def test_to_gray_passthrough(self) -> None:
        image = _make_noisy_image()
        assert to_gray(image) is image

    def test_crop_band(self) -> None:
        image = _make_noisy_image(height=100)
        band = crop_band(image, 0.25, 0.75)
        assert band.shape == (50, 300)
        assert np.array_equal(band, image[25:75])

    def test_crop_band_full_is_noop(self) -> None:
        image = _make_noisy_image()
        assert crop_band(image) is image

    def test_crop_band_never_empty(self) -> None:
        image = _make_noisy_image(height=10)
        assert crop_band(image, 0.5, 0.51).shape[0] == 1

    def test_upscale(self) -> None:
        result = upscale(_make_noisy_image(height=100, width=150), 2.0)
        assert result.shape == (200, 300)

    def test_upscale_factor_one_is_noop(self) -> None:
        image = _make_noisy_image()
        assert upscale(image, 1.0) is image

    def test_sharpen_preserves_shape_and_dtype(self) -> None:
        image = _make_noisy_image()
        result = sharpen(image, amount=1.5)
        assert result.shape == image.shape
        assert result.dtype == np.uint8

    def test_sharpen_increases_sharpness(self) -> None:
        image = _make_noisy_image()
        assert calculate_sharpness(sharpen(image)) > calculate_sharpness(image)

    def test_otsu_produces_binary(self) -> None:
        result = binarize_otsu(_make_noisy_image())
        assert set(np.unique(result)).issubset({0, 255})

    def test_clahe_with_color_image(self) -> None:
        result = apply_clahe(_make_color_image())
        assert len(result.shape) == 2


class TestQualityMetrics:
    """Tests for image quality measurements."""

    def test_sharpness_positive(self) -> None:
        assert calculate_sharpness(_make_noisy_image()) > 0

    def test_contrast_color_image(self) -> None:
        assert calculate_contrast(_make_color_image()) > 0

    def test_blank_image_low_sharpness(self) -> None:
        blank = np.zeros((100, 100), dtype=np.uint8)
        assert calculate_sharpness(blank) == 0.0


class TestFieldPreprocessor:
    """Tests for profile-driven preprocessing."""

    def test_profile_steps_applied(self) -> None:
        profiles = {
            "digits": PreprocessingProfile(
                crop_top=0.5,
                crop_bottom=1.0,
                upscale=2.0,
                sharpen_enabled=True,
                binarize_enabled=True,
            )
        }
        result, metrics = FieldPreprocessor(profiles).process(
            _make_color_image(), "digits"
        )
        assert result.shape == (200, 600)
        assert set(np.unique(result)).issubset({0, 255})
        assert isinstance(metrics, QualityMetrics)

    def test_all_steps_disabled(self) -> None:
        profiles = {"raw": PreprocessingProfile(contrast_enabled=False)}
        image = _make_noisy_image()
        result, _ = FieldPreprocessor(profiles).process(image, "raw")
        assert np.array_equal(result, image)

    def test_metrics_populated(self) -> None:
        preprocessor = FieldPreprocessor({"p": PreprocessingProfile()})
        _, metrics = preprocessor.process(_make_noisy_image(), "p")
        assert metrics.sharpness_before > 0
        assert metrics.sharpness_after > 0
        assert metrics.contrast_before > 0

    def test_unknown_profile_falls_back_to_defaults(self) -> None:
        preprocessor = FieldPreprocessor({})
        assert preprocessor.profile("missing") == PreprocessingProfile()
        result, _ = preprocessor.process(_make_color_image(), "missing")
        assert result.shape == (200, 300)

    @pytest.mark.parametrize("name", ["front_card", "back_card"])
    def test_default_profiles_run(self, name: str, sample_image: np.ndarray) -> None:
        preprocessor = FieldPreprocessor(OCRConfig().profiles)
        result, _ = preprocessor.process(sample_image, name)
        assert result.ndim == 2
        assert result.shape[0] > sample_image.shape[0]
