from __future__ import annotations

import io
from typing import Callable

import pytest
from PIL import Image

from models import ImageItem, SessionState, Settings

MEDIA_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}

EXTENSIONS = {
    "PNG": "png",
    "JPEG": "jpg",
    "GIF": "gif",
    "BMP": "bmp",
}


def encode(img: Image.Image, fmt: str = "PNG", **params) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def item_from_image(img: Image.Image, name: str, fmt: str = "PNG") -> ImageItem:
    return ImageItem(data=encode(img, fmt), media_type=MEDIA_TYPES[fmt], name=name)


@pytest.fixture
def make_item() -> Callable[..., ImageItem]:
    """Build an ImageItem holding a solid-colour image."""

    def factory(
        width: int = 40,
        height: int = 30,
        fmt: str = "PNG",
        name: str | None = None,
        mode: str = "RGB",
        color=(200, 30, 30),
    ) -> ImageItem:
        img = Image.new(mode, (width, height), color)
        return item_from_image(img, name or f"image_{width}x{height}.{EXTENSIONS[fmt]}", fmt)

    return factory


@pytest.fixture
def photo_item() -> ImageItem:
    """Noisy RGB image standing in for photographic input, stored as PNG."""
    size = (400, 300)
    channels = [Image.effect_noise(size, sigma) for sigma in (40, 55, 70)]
    img = Image.merge("RGB", channels)
    return item_from_image(img, "holiday.png", "PNG")


@pytest.fixture
def corrupt_item() -> ImageItem:
    return ImageItem(data=b"definitely not an image", media_type="image/png", name="broken.png")


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def session(settings: Settings) -> SessionState:
    return SessionState(batch_capacity=settings.batch_capacity)
