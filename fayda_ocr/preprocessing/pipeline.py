"""Per-profile preprocessing of card sub-images before OCR.

Different fields tolerate different preparation: digits on the back card
survive aggressive upscaling and sharpening, dates on the front card do
better with milder treatment. The choice is made per profile (and so per
field), never per document.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from fayda_ocr.utils.config import PreprocessingProfile
from fayda_ocr.utils.logger import get_logger

from .filters import apply_clahe, binarize_otsu, crop_band, sharpen, upscale

logger = get_logger(__name__)


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY) if len(image.shape) == 3 else image
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Contrast score (higher means more contrast).
    """
    gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY) if len(image.shape) == 3 else image
    return float(gray.std())


class FieldPreprocessor:
    """Applies a named :class:`PreprocessingProfile` to a card image.

    Args:
        profiles: Available profiles keyed by name.
    """

    def __init__(self, profiles: dict[str, PreprocessingProfile]) -> None:
        self.profiles = profiles

    def profile(self, name: str) -> PreprocessingProfile:
        """Look up a profile, falling back to defaults for unknown names."""
        if name not in self.profiles:
            logger.warning("Unknown preprocessing profile %r, using defaults", name)
            return PreprocessingProfile()
        return self.profiles[name]

    def process(
        self, image: np.ndarray, profile_name: str
    ) -> tuple[np.ndarray, QualityMetrics]:
        """Run the profile's steps on an image.

        Order: crop band, upscale, contrast, sharpen, binarize.

        Args:
            image: Decoded card image (RGB or grayscale).
            profile_name: Name of the profile to apply.

        Returns:
            Tuple of (processed_image, quality_metrics).
        """
        profile = self.profile(profile_name)
        metrics = QualityMetrics(
            sharpness_before=calculate_sharpness(image),
            contrast_before=calculate_contrast(image),
            sharpness_after=0.0,
            contrast_after=0.0,
        )

        result = crop_band(image, profile.crop_top, profile.crop_bottom)
        result = upscale(result, profile.upscale)

        if profile.contrast_enabled:
            result = apply_clahe(
                result,
                clip_limit=profile.clahe_clip_limit,
                tile_size=profile.clahe_tile_size,
            )

        if profile.sharpen_enabled:
            result = sharpen(result, amount=profile.sharpen_amount)

        if profile.binarize_enabled:
            result = binarize_otsu(result)

        metrics.sharpness_after = calculate_sharpness(result)
        metrics.contrast_after = calculate_contrast(result)

        logger.info(
            "Preprocessed with %s: sharpness %.1f->%.1f, contrast %.1f->%.1f",
            profile_name,
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return result, metrics
