from pathlib import Path

import pytest
from PIL import Image


@pytest.fixture
def make_image(tmp_path):
    """Write a simple two-tone image and return its path."""

    def _make(rel="src/photo.png", size=(400, 200), mode="RGB"):
        path = Path(tmp_path) / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        img = Image.new(mode, size, "white")
        img.paste("black", (0, 0, size[0] // 2, size[1]))
        img.save(path)
        return path

    return _make
