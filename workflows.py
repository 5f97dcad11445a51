"""
User-facing operations for the three tools (Image to PDF, Compressor, Converter).

Every operation takes the SessionState explicitly, reports exactly one
terminal Status, and leaves the session unchanged when it fails.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union
import logging
import shutil

from models import (
    ImageItem, SessionState, Settings, OutputFormat,
    ImageToolboxError, CapacityExceeded, IndexOutOfRange, EmptyBatch,
    DecodeFailure, EncodeFailure, CompressionFailure
)
from processor import DocumentAssembler, ReencodePipeline

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"


class StatusKind(Enum):
    """Outcome category shown in the status banner."""
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Status:
    kind: StatusKind
    message: str

    @classmethod
    def success(cls, message: str) -> "Status":
        return cls(StatusKind.SUCCESS, message)

    @classmethod
    def error(cls, message: str) -> "Status":
        return cls(StatusKind.ERROR, message)


@dataclass(frozen=True)
class OutputFile:
    """A named downloadable payload produced by a workflow."""
    name: str
    media_type: str
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def write(self, directory: Path) -> Path:
        """
        Write the payload into a directory.
        Writes to a temporary file first and renames on success.
        """
        directory.mkdir(parents=True, exist_ok=True)
        output_path = directory / self.name
        temp_path = output_path.with_name(output_path.name + ".tmp")
        try:
            temp_path.write_bytes(self.data)
            if output_path.exists():
                output_path.unlink()
            shutil.move(str(temp_path), str(output_path))
        finally:
            if temp_path.exists():
                temp_path.unlink()
        logger.info(f"Wrote {output_path} ({self.size_bytes} bytes)")
        return output_path


@dataclass(frozen=True)
class Outcome:
    """Terminal result of one operation: a status and, on success, maybe a file."""
    status: Status
    output: Optional[OutputFile] = None

    @property
    def ok(self) -> bool:
        return self.status.kind == StatusKind.SUCCESS


# Operation names used with OperationTracker
PDF_EXPORT = "pdf_export"
COMPRESSION = "compression"
CONVERSION = "conversion"


class OperationTracker:
    """
    Remembers which tool operations are in flight so each one runs at most
    once at a time. Only touched from the UI thread.
    """

    def __init__(self):
        self._running: set[str] = set()

    def is_running(self, operation: str) -> bool:
        return operation in self._running

    def begin(self, operation: str) -> bool:
        """Mark an operation as started. Returns False if it is already running."""
        if operation in self._running:
            return False
        self._running.add(operation)
        return True

    def end(self, operation: str) -> None:
        self._running.discard(operation)

    def can_start(self, operation: str, has_input: bool) -> bool:
        """Whether the control for `operation` should be enabled."""
        return has_input and not self.is_running(operation)


def format_bytes(size: int) -> str:
    """Human-readable byte count, e.g. '0 Bytes', '1.5 KB', '2 MB'."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while size >= 1024 ** (i + 1) and i < len(units) - 1:
        i += 1
    value = round(size / 1024 ** i, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[i]}"


def output_name(user_name: str, default_stem: str, extension: str) -> str:
    """
    Build a download file name.

    A non-blank user name replaces the default stem. The extension is always
    appended, unless the user already typed it.
    """
    stem = (user_name or "").strip()
    if stem.lower().endswith(extension.lower()):
        stem = stem[:-len(extension)].strip()
    if not stem:
        stem = default_stem
    return stem + extension


def check_output_writable(path: Path) -> tuple[bool, str]:
    """
    Check if output path is writable.

    Returns:
        Tuple of (is_writable, error_message)
    """
    try:
        if path.exists():
            # Try to open for append to check lock
            with open(path, "a"):
                pass
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch()
            path.unlink()
        return True, ""
    except PermissionError:
        return False, f"File is locked or permission denied: {path}"
    except OSError as e:
        return False, str(e)


# --- Image to PDF ---

def add_images(session: SessionState, items: Iterable[ImageItem]) -> Outcome:
    """Append images to the batch; all-or-nothing against the capacity."""
    items = list(items)
    if not items:
        return Outcome(Status.error("No images selected."))

    batch = session.get_batch()
    try:
        batch.append(items)
    except CapacityExceeded as e:
        logger.warning(str(e))
        return Outcome(Status.error(f"Error: You can only upload a maximum of {e.capacity} images."))

    return Outcome(Status.success(f"{len(items)} image(s) added. Total images: {len(batch)}"))


def add_image_files(session: SessionState, paths: Iterable[Union[str, Path]]) -> Outcome:
    """Read files from disk and append them to the batch."""
    items = []
    for path in paths:
        try:
            items.append(ImageItem.from_path(path))
        except OSError as e:
            logger.exception(f"Failed to read image: {path}")
            return Outcome(Status.error(f"Failed to read {Path(path).name}: {e.strerror or e}"))
    return add_images(session, items)


def remove_image(session: SessionState, index: int) -> Outcome:
    """Remove one image from the batch by position."""
    batch = session.get_batch()
    try:
        removed = batch.remove_at(index)
    except IndexOutOfRange as e:
        logger.error(str(e))
        return Outcome(Status.error("Could not remove image: it is no longer in the list."))

    logger.info(f"Removed {removed.name} from batch")
    return Outcome(Status.success(f"Image removed successfully. Total images: {len(batch)}"))


def clear_images(session: SessionState) -> Outcome:
    session.clear_batch()
    return Outcome(Status.success("All images cleared."))


def export_pdf(
    session: SessionState,
    settings: Settings,
    file_name: str = "",
    items: Optional[Sequence[ImageItem]] = None
) -> Outcome:
    """
    Assemble the batch into a PDF, one page per image.

    `items` is the snapshot to assemble; by default the session batch is
    snapshotted when the call starts.
    """
    snapshot = tuple(items) if items is not None else session.get_batch().snapshot()
    assembler = DocumentAssembler.from_settings(settings)

    try:
        pdf_bytes = assembler.assemble(snapshot)
    except EmptyBatch:
        return Outcome(Status.error("Please add images before converting."))
    except DecodeFailure as e:
        logger.exception("PDF conversion failed")
        return Outcome(Status.error(f"An error occurred during PDF conversion: could not read {e.name}."))
    except (ImageToolboxError, RuntimeError):
        logger.exception("PDF conversion failed")
        return Outcome(Status.error("An error occurred during PDF conversion."))

    output = OutputFile(
        name=output_name(file_name, settings.pdf_default_name, ".pdf"),
        media_type=PDF_MEDIA_TYPE,
        data=pdf_bytes
    )
    return Outcome(
        Status.success(f"PDF created with {len(snapshot)} page(s): {output.name} ({format_bytes(output.size_bytes)})"),
        output
    )


# --- Compressor ---

def load_compression_image(session: SessionState, item: Optional[ImageItem]) -> Outcome:
    """Replace (or, with None, clear) the compression slot."""
    if item is None:
        session.clear_compression_image()
        return Outcome(Status.success("Compression image cleared."))
    session.set_compression_image(item)
    return Outcome(Status.success(f"Image loaded for compression: {item.name}"))


def compress_image(
    session: SessionState,
    settings: Settings,
    quality: Optional[float] = None,
    file_name: str = ""
) -> Outcome:
    """Compress the image in the compression slot to JPEG."""
    image = session.get_compression_image()
    if image is None:
        return Outcome(Status.error("Please select an image to compress."))
    if quality is None:
        quality = settings.compression_quality
    if not 0.0 <= quality <= 1.0:
        return Outcome(Status.error("Quality must be between 0 and 100%."))

    pipeline = ReencodePipeline.from_settings(settings)
    try:
        result = pipeline.compress(image, quality, settings.max_dimension)
    except CompressionFailure:
        logger.exception("Image compression failed")
        return Outcome(Status.error("An error occurred during compression."))

    output = OutputFile(
        name=output_name(file_name, f"{image.stem}_compressed", OutputFormat.JPEG.extension),
        media_type=result.media_type,
        data=result.output_bytes
    )
    return Outcome(
        Status.success(
            f"Image compressed: {format_bytes(image.size_bytes)} -> "
            f"{format_bytes(result.output_byte_length)}"
        ),
        output
    )


# --- Converter ---

def load_conversion_image(session: SessionState, item: Optional[ImageItem]) -> Outcome:
    """Replace (or, with None, clear) the conversion slot."""
    if item is None:
        session.clear_conversion_image()
        return Outcome(Status.success("Conversion image cleared."))
    session.set_conversion_image(item)
    return Outcome(Status.success(f"Image loaded for conversion: {item.name}"))


def convert_image(
    session: SessionState,
    settings: Settings,
    target_format: OutputFormat,
    file_name: str = ""
) -> Outcome:
    """Convert the image in the conversion slot to JPEG or PNG."""
    image = session.get_conversion_image()
    if image is None:
        return Outcome(Status.error("Please select an image to convert."))

    pipeline = ReencodePipeline.from_settings(settings)
    try:
        result = pipeline.convert(image, target_format)
    except DecodeFailure as e:
        logger.exception("Image conversion failed")
        return Outcome(Status.error(f"Conversion failed: could not read {e.name}."))
    except EncodeFailure:
        logger.exception("Image conversion failed")
        return Outcome(Status.error("Conversion failed."))

    output = OutputFile(
        name=output_name(file_name, f"{image.stem}_converted", target_format.extension),
        media_type=result.media_type,
        data=result.output_bytes
    )
    label = "PNG" if target_format == OutputFormat.PNG else "JPG"
    return Outcome(Status.success(f"Image successfully converted to {label}!"), output)
