"""Shared test fixtures for the Fayda ID extraction test suite."""

from pathlib import Path

import numpy as np
import pytest
from helpers import build_text_layer, make_pdf


@pytest.fixture
def sample_text() -> str:
    """Complete text layer from which every field can be recovered."""
    return build_text_layer()


@pytest.fixture
def pdf_bytes() -> bytes:
    """PDF-like document bytes with four embedded JPEGs."""
    return make_pdf()


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic RGB card image."""
    image = np.full((120, 200, 3), 230, dtype=np.uint8)
    image[40:80, 20:180] = (30, 30, 30)
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
