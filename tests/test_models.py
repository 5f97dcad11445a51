from __future__ import annotations

import json
from pathlib import Path

import pytest

from models import (
    BatchCollection,
    CapacityExceeded,
    CompressionSpec,
    ImageItem,
    IndexOutOfRange,
    OutputFormat,
    PageLayout,
    SessionState,
    Settings,
)


def _items(count: int, prefix: str = "img") -> list[ImageItem]:
    return [ImageItem(data=bytes([i % 256]) * (i + 1), media_type="image/png", name=f"{prefix}{i}.png") for i in range(count)]


def test_image_item_reports_size_and_stem() -> None:
    item = ImageItem(data=b"12345", media_type="image/jpeg", name="holiday.photo.jpg")

    assert item.size_bytes == 5
    assert item.stem == "holiday.photo"
    assert ImageItem(data=b"", media_type="image/png", name="noext").stem == "noext"


def test_image_item_from_path_reads_bytes_and_guesses_media_type(tmp_path: Path) -> None:
    path = tmp_path / "scan.png"
    path.write_bytes(b"\x89PNG fake")

    item = ImageItem.from_path(path)

    assert item.name == "scan.png"
    assert item.media_type == "image/png"
    assert item.data == b"\x89PNG fake"


def test_image_item_from_path_unknown_extension_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "blob.unknownext"
    path.write_bytes(b"x")

    assert ImageItem.from_path(path).media_type == "application/octet-stream"


def test_batch_append_preserves_input_order() -> None:
    batch = BatchCollection()
    first, second = _items(2), _items(3, prefix="more")

    batch.append(first)
    batch.append(second)

    assert [item.name for item in batch] == [i.name for i in first + second]
    assert batch.length() == len(batch) == 5
    assert batch.remaining_capacity == 95


@pytest.mark.parametrize("prefill", [0, 1, 50, 99, 100])
def test_batch_append_over_capacity_is_all_or_nothing(prefill: int) -> None:
    batch = BatchCollection(capacity=100)
    batch.append(_items(prefill))
    before = batch.snapshot()

    with pytest.raises(CapacityExceeded) as excinfo:
        batch.append(_items(101 - prefill, prefix="overflow"))

    assert batch.snapshot() == before
    assert excinfo.value.capacity == 100
    assert excinfo.value.current == prefill


def test_batch_accepts_exactly_capacity() -> None:
    batch = BatchCollection(capacity=100)
    batch.append(_items(60))
    batch.append(_items(40, prefix="rest"))

    assert len(batch) == 100
    assert batch.remaining_capacity == 0


@pytest.mark.parametrize("removed", [0, 2, 4])
def test_batch_remove_at_shifts_later_items_down(removed: int) -> None:
    original = _items(5)
    batch = BatchCollection(items=original)

    assert batch.remove_at(removed) == original[removed]

    for j in range(len(batch)):
        expected = original[j] if j < removed else original[j + 1]
        assert batch.item_at(j) == expected


@pytest.mark.parametrize("index", [-1, 3, 10])
def test_batch_remove_at_rejects_out_of_range(index: int) -> None:
    batch = BatchCollection(items=_items(3))

    with pytest.raises(IndexOutOfRange):
        batch.remove_at(index)
    assert len(batch) == 3


def test_index_out_of_range_is_an_index_error() -> None:
    with pytest.raises(IndexError):
        BatchCollection().item_at(0)


def test_batch_clear_and_snapshot_independence() -> None:
    batch = BatchCollection(items=_items(3))
    snapshot = batch.snapshot()

    batch.remove_at(0)
    batch.clear()

    assert len(batch) == 0
    assert not batch
    assert len(snapshot) == 3


def test_session_slots_replace_and_clear_independently() -> None:
    session = SessionState()
    a, b, c = _items(3)

    session.set_compression_image(a)
    session.set_compression_image(b)
    session.set_conversion_image(c)

    assert session.get_compression_image() == b
    assert session.get_conversion_image() == c

    session.clear_compression_image()
    assert session.get_compression_image() is None
    assert session.get_conversion_image() == c

    session.clear_conversion_image()
    assert session.get_conversion_image() is None


def test_session_batch_lifecycle() -> None:
    session = SessionState(batch_capacity=5)
    session.get_batch().append(_items(2))

    session.clear_batch()
    assert len(session.get_batch()) == 0
    assert session.get_batch().capacity == 5

    replacement = BatchCollection(capacity=10, items=_items(4))
    session.set_batch(replacement)
    assert session.get_batch() is replacement


def test_page_layout_rect_and_scaling() -> None:
    layout = PageLayout(page_width=210, page_height=297, margin=10, x=10, y=20, width=100, height=50)

    assert layout.rect == (10, 20, 110, 70)
    assert layout.scaled(2) == (20, 40, 220, 140)


@pytest.mark.parametrize("quality", [-0.1, 1.01])
def test_compression_spec_rejects_out_of_range_quality(quality: float) -> None:
    with pytest.raises(ValueError):
        CompressionSpec(quality)


@pytest.mark.parametrize(
    ("name", "expected"),
    [("jpg", OutputFormat.JPEG), ("JPEG", OutputFormat.JPEG), (".png", OutputFormat.PNG)],
)
def test_output_format_from_name(name: str, expected: OutputFormat) -> None:
    assert OutputFormat.from_name(name) is expected


def test_output_format_properties() -> None:
    assert OutputFormat.JPEG.extension == ".jpg"
    assert OutputFormat.JPEG.media_type == "image/jpeg"
    assert OutputFormat.PNG.extension == ".png"
    assert OutputFormat.PNG.pil_format == "PNG"
    with pytest.raises(ValueError):
        OutputFormat.from_name("webp")


def test_settings_round_trip_through_dict() -> None:
    settings = Settings(margin=5, batch_capacity=20, max_dimension=800, pdf_default_name="album")

    restored = Settings.from_dict(settings.to_dict())

    assert restored == settings


def test_settings_load_from_file(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"max_dimension": 1024, "conversion_quality": 0.75}), encoding="utf-8")

    settings = Settings.load_from_file(path)

    assert settings.max_dimension == 1024
    assert settings.conversion_quality == 0.75
    assert settings.page_width == 210


def test_settings_load_falls_back_to_defaults(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")

    assert Settings.load_from_file(broken) == Settings()
    assert Settings.load_from_file(tmp_path / "missing.json") == Settings()


def test_settings_ignores_out_of_range_quality() -> None:
    settings = Settings.from_dict({"compression_quality": 3, "conversion_quality": -1})

    assert settings.compression_quality == Settings().compression_quality
    assert settings.conversion_quality == Settings().conversion_quality


@pytest.mark.parametrize("index", [True, False, 1.0])
def test_batch_rejects_non_integer_indices(index) -> None:
    batch = BatchCollection(items=_items(3))

    with pytest.raises(IndexOutOfRange):
        batch.item_at(index)
    with pytest.raises(IndexOutOfRange):
        batch.remove_at(index)
    assert len(batch) == 3


@pytest.mark.parametrize("capacity", [-5, 0])
def test_settings_ignores_non_positive_batch_capacity(capacity: int) -> None:
    settings = Settings.from_dict({"batch_capacity": capacity})

    assert settings.batch_capacity == Settings().batch_capacity
    assert SessionState(batch_capacity=settings.batch_capacity).get_batch().capacity == settings.batch_capacity
