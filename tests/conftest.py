"""Shared test fixtures for watermarker tests."""

from pathlib import Path
from typing import Callable, Tuple

import pytest
from PIL import Image

from watermarker.config import make_config

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255)
GREEN = (0, 255, 0)


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a solid-colour image under ``tmp_path``.

    The container is chosen from the file extension unless ``fmt`` is given.
    """

    def _make(
        name: str,
        size: Tuple[int, int] = (100, 100),
        color=BLUE,
        mode: str = "RGB",
        fmt: str = None,
    ) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new(mode, size, color).save(path, format=fmt)
        return path

    return _make


@pytest.fixture
def watermark_path(make_image) -> Path:
    """Opaque red 10x10 watermark."""
    return make_image("wm.png", size=(10, 10), color=RED, mode="RGBA")


@pytest.fixture
def broken_image(tmp_path: Path) -> Path:
    """A file with an image extension but no image data."""
    path = tmp_path / "broken.png"
    path.write_bytes(b"this is not an image")
    return path


@pytest.fixture
def target_dir(tmp_path: Path) -> Path:
    return tmp_path / "output"


@pytest.fixture
def config_for(watermark_path: Path, target_dir: Path):
    """Build a BatchConfig for the given inputs with the shared watermark."""

    def _config(*input_paths, **kwargs):
        return make_config(watermark_path, list(input_paths), target_dir=target_dir, **kwargs)

    return _config
