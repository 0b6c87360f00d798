"""Shared test fixtures for the extraction test suite."""

from collections.abc import Iterator
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from finocr.utils.temp_files import TempFileManager


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.full((200, 300), 120, dtype=np.uint8)
    image[50:150, 50:250] = 200
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (180, 200, 220)
    return image


@pytest.fixture
def sample_png(tmp_path: Path, sample_color_image: np.ndarray) -> Path:
    """Write the RGB test image to a 150 DPI PNG file."""
    path = tmp_path / "scan.png"
    Image.fromarray(sample_color_image).save(path, dpi=(150, 150))
    return path


@pytest.fixture
def fake_pdf(tmp_path: Path) -> Path:
    """A small file with a PDF suffix; parsing is mocked in tests."""
    path = tmp_path / "statement.pdf"
    path.write_bytes(b"%PDF-1.4\n% test document\n")
    return path


@pytest.fixture
def temp_files(tmp_path: Path) -> Iterator[TempFileManager]:
    """A started temp manager rooted in tmp_path, without process hooks."""
    manager = TempFileManager(tmp_path / "ocr-temp", register_hooks=False).start()
    yield manager
    manager.shutdown()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
