"""Image filters used to prepare card crops for OCR.

Contrast enhancement, sharpening, upscaling, band cropping and Otsu
binarization. Each filter is a pure function of its input array.
"""

import cv2
import numpy as np

from fayda_ocr.utils.logger import get_logger

logger = get_logger(__name__)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an image to grayscale if it has color channels.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Grayscale image.
    """
    if len(image.shape) == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    return image


def crop_band(image: np.ndarray, top: float = 0.0, bottom: float = 1.0) -> np.ndarray:
    """Keep the horizontal band between two fractions of the image height.

    Args:
        image: Input image.
        top: Start of the band as a fraction of the height.
        bottom: End of the band as a fraction of the height.

    Returns:
        The cropped band (a view when no crop is needed).
    """
    if top <= 0.0 and bottom >= 1.0:
        return image
    h = image.shape[0]
    y0 = int(h * top)
    y1 = max(y0 + 1, int(h * bottom))
    logger.debug("Cropped band rows %d..%d of %d", y0, y1, h)
    return image[y0:y1]


def upscale(image: np.ndarray, factor: float) -> np.ndarray:
    """Enlarge an image with Lanczos interpolation.

    Small digits on card crops recognize better at a larger size.

    Args:
        image: Input image.
        factor: Scale factor; values <= 1 return the image unchanged.

    Returns:
        The resized image.
    """
    if factor <= 1.0:
        return image
    h, w = image.shape[:2]
    size = (int(round(w * factor)), int(round(h * factor)))
    result = cv2.resize(image, size, interpolation=cv2.INTER_LANCZOS4)
    logger.debug("Upscaled %dx%d by %.2f", w, h, factor)
    return result


def apply_clahe(
    image: np.ndarray,
    clip_limit: float = 2.0,
    tile_size: int = 8,
) -> np.ndarray:
    """Enhance contrast using CLAHE (Contrast Limited Adaptive Histogram Equalization).

    Args:
        image: Input image (RGB or grayscale).
        clip_limit: Threshold for contrast limiting.
        tile_size: Size of the grid for histogram equalization.

    Returns:
        Contrast-enhanced grayscale image.
    """
    gray = to_gray(image)
    clahe = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=(tile_size, tile_size))
    result = clahe.apply(gray)
    logger.debug("Applied CLAHE (clip=%.1f, tile=%d)", clip_limit, tile_size)
    return result


def sharpen(image: np.ndarray, amount: float = 1.0, sigma: float = 2.0) -> np.ndarray:
    """Sharpen with an unsharp mask.

    Args:
        image: Input image.
        amount: Weight of the high-frequency detail added back.
        sigma: Gaussian sigma of the blur used as the mask.

    Returns:
        Sharpened image with the input's shape and dtype.
    """
    blurred = cv2.GaussianBlur(image, (0, 0), sigma)
    result = cv2.addWeighted(image, 1.0 + amount, blurred, -amount, 0)
    logger.debug("Applied unsharp mask (amount=%.1f, sigma=%.1f)", amount, sigma)
    return result


def binarize_otsu(image: np.ndarray) -> np.ndarray:
    """Binarize an image using Otsu's automatic thresholding.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Binary image with pixel values 0 or 255.
    """
    gray = to_gray(image)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    logger.debug("Applied Otsu binarization")
    return binary
