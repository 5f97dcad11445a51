from __future__ import annotations

import json
from pathlib import Path

from PIL import Image

from cli import main
from processor import DocumentAssembler, page_count


def _write_image(path: Path, size: tuple[int, int] = (60, 40), fmt: str = "PNG") -> Path:
    Image.new("RGB", size, (10, 120, 200)).save(path, format=fmt)
    return path


def test_pdf_command_writes_default_name(tmp_path: Path, capsys) -> None:
    a = _write_image(tmp_path / "a.png")
    b = _write_image(tmp_path / "b.jpg", fmt="JPEG")
    out_dir = tmp_path / "out"

    exit_code = main(["pdf", str(a), str(b), "-o", str(out_dir)])

    assert exit_code == 0
    pdf = out_dir / "converted_images.pdf"
    assert page_count(pdf.read_bytes()) == 2
    assert "PDF created with 2 page(s)" in capsys.readouterr().out


def test_compress_command_with_name_and_quality(tmp_path: Path) -> None:
    source = _write_image(tmp_path / "photo.png", size=(2400, 1200))

    exit_code = main(["compress", str(source), "-q", "60", "-n", "small", "-o", str(tmp_path)])

    assert exit_code == 0
    with Image.open(tmp_path / "small.jpg") as img:
        assert img.format == "JPEG"
        assert img.size == (1920, 960)


def test_compress_command_reads_max_dimension_from_config(tmp_path: Path) -> None:
    source = _write_image(tmp_path / "photo.png", size=(400, 200))
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"max_dimension": 100}), encoding="utf-8")

    exit_code = main(["--config", str(config), "compress", str(source), "-o", str(tmp_path)])

    assert exit_code == 0
    with Image.open(tmp_path / "photo_compressed.jpg") as img:
        assert img.size == (100, 50)


def test_convert_command_to_png(tmp_path: Path) -> None:
    source = _write_image(tmp_path / "logo.jpg", size=(33, 17), fmt="JPEG")

    exit_code = main(["convert", str(source), "--to", "png", "-o", str(tmp_path)])

    assert exit_code == 0
    with Image.open(tmp_path / "logo_converted.png") as img:
        assert img.format == "PNG"
        assert img.size == (33, 17)


def test_missing_input_returns_error(tmp_path: Path, capsys) -> None:
    exit_code = main(["convert", str(tmp_path / "nope.png"), "--to", "jpg"])

    assert exit_code == 1
    assert "Input file not found" in capsys.readouterr().err


def test_corrupt_input_reports_failure(tmp_path: Path, capsys) -> None:
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")

    exit_code = main(["pdf", str(broken), "-o", str(tmp_path)])

    assert exit_code == 1
    assert "broken.png" in capsys.readouterr().err
    assert not (tmp_path / "converted_images.pdf").exists()


def test_invalid_quality_is_rejected(tmp_path: Path) -> None:
    source = _write_image(tmp_path / "photo.png")

    assert main(["compress", str(source), "-q", "150", "-o", str(tmp_path)]) == 1


def test_pdf_library_error_returns_error(tmp_path: Path, monkeypatch, capsys) -> None:
    source = _write_image(tmp_path / "a.png")

    def failing_assemble(self, items):
        raise RuntimeError("cannot save document")

    monkeypatch.setattr(DocumentAssembler, "assemble", failing_assemble)

    assert main(["pdf", str(source), "-o", str(tmp_path)]) == 1
    assert "An error occurred during PDF conversion." in capsys.readouterr().err
