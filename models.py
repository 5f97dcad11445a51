"""
Data models for the image toolbox application.
Contains dataclasses for images, batches, page layouts, processing specs,
session state and settings, plus the error types raised by the pipeline.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Union
from enum import Enum
import json
import mimetypes
from pathlib import Path


# Default policy values (see Settings)
DEFAULT_BATCH_CAPACITY = 100
DEFAULT_MAX_DIMENSION = 1920
DEFAULT_MAX_OUTPUT_BYTES = 100 * 1024 * 1024
DEFAULT_CONVERSION_QUALITY = 0.9


class ImageToolboxError(Exception):
    """Base class for all pipeline errors."""


class CapacityExceeded(ImageToolboxError):
    """Batch append would exceed the batch capacity."""

    def __init__(self, capacity: int, requested: int, current: int):
        self.capacity = capacity
        self.requested = requested
        self.current = current
        super().__init__(
            f"Cannot add {requested} image(s) to a batch of {current}: "
            f"maximum is {capacity}"
        )


class IndexOutOfRange(ImageToolboxError, IndexError):
    """Index does not address an item of the batch."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"Index {index} out of range for batch of {length}")


class EmptyBatch(ImageToolboxError):
    """Document assembly requested with no images."""

    def __init__(self):
        super().__init__("No images to assemble")


class DecodeFailure(ImageToolboxError):
    """Image bytes could not be decoded to a raster."""

    def __init__(self, name: str, reason: str = ""):
        self.name = name
        self.reason = reason
        message = f"Could not decode image: {name}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class EncodeFailure(ImageToolboxError):
    """Re-encoding a raster produced no output."""


class CompressionFailure(ImageToolboxError):
    """The recompression step could not produce output."""


class OutputFormat(Enum):
    """Output image encoding format."""
    PNG = "png"
    JPEG = "jpeg"

    @property
    def extension(self) -> str:
        return ".png" if self is OutputFormat.PNG else ".jpg"

    @property
    def media_type(self) -> str:
        return "image/png" if self is OutputFormat.PNG else "image/jpeg"

    @property
    def pil_format(self) -> str:
        """Format name understood by Pillow's Image.save."""
        return "PNG" if self is OutputFormat.PNG else "JPEG"

    @classmethod
    def from_name(cls, name: str) -> "OutputFormat":
        """Parse a user-facing format name ('jpg', 'jpeg', 'png')."""
        key = name.strip().lower().lstrip(".")
        if key in ("jpg", "jpeg"):
            return cls.JPEG
        if key == "png":
            return cls.PNG
        raise ValueError(f"Unsupported target format: {name}")


@dataclass(frozen=True)
class ImageItem:
    """
    A user-supplied image: raw payload plus its declared media type and name.
    Items carry no identity beyond their position in a BatchCollection.
    """
    data: bytes
    media_type: str
    name: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        """Display name without its last extension."""
        return Path(self.name).stem

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageItem":
        """Read an image file from disk. Raises OSError if it cannot be read."""
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        return cls(
            data=path.read_bytes(),
            media_type=media_type or "application/octet-stream",
            name=path.name,
        )

    def __repr__(self) -> str:
        return f"ImageItem(name={self.name!r}, media_type={self.media_type!r}, size_bytes={self.size_bytes})"


class BatchCollection:
    """
    Ordered, capacity-bounded collection of images queued for document assembly.

    Appends are all-or-nothing and removals shift later items down, so the
    relative order of surviving items always matches upload order.
    """

    def __init__(self, capacity: int = DEFAULT_BATCH_CAPACITY, items: Iterable[ImageItem] = ()):
        if capacity < 0:
            raise ValueError("capacity must be non-negative")
        self.capacity = capacity
        self._items: list[ImageItem] = []
        if items:
            self.append(items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ImageItem]:
        return iter(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def length(self) -> int:
        """Number of images in the batch."""
        return len(self._items)

    @property
    def remaining_capacity(self) -> int:
        return self.capacity - len(self._items)

    def item_at(self, index: int) -> ImageItem:
        """Get the image at a position. Negative indices are not accepted."""
        self._check_index(index)
        return self._items[index]

    def append(self, items: Iterable[ImageItem]) -> None:
        """
        Append images in input order.
        Raises CapacityExceeded, leaving the batch untouched, if the result
        would hold more than `capacity` images.
        """
        new_items = list(items)
        if len(self._items) + len(new_items) > self.capacity:
            raise CapacityExceeded(self.capacity, len(new_items), len(self._items))
        self._items.extend(new_items)

    def remove_at(self, index: int) -> ImageItem:
        """Remove and return the image at a position."""
        self._check_index(index)
        return self._items.pop(index)

    def clear(self) -> None:
        """Remove all images."""
        self._items.clear()

    def snapshot(self) -> tuple[ImageItem, ...]:
        """Immutable copy of the current order, safe to hand to long-running work."""
        return tuple(self._items)

    def _check_index(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._items):
            raise IndexOutOfRange(index, len(self._items))


@dataclass(frozen=True)
class PageLayout:
    """
    Placement of one image on one fixed-size page.
    All values share the unit of the page size (millimetres by default).
    """
    page_width: float
    page_height: float
    margin: float
    x: float
    y: float
    width: float
    height: float

    @property
    def rect(self) -> tuple[float, float, float, float]:
        """Placement as (x0, y0, x1, y1)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def scaled(self, factor: float) -> tuple[float, float, float, float]:
        """Placement rectangle converted to another unit."""
        return tuple(v * factor for v in self.rect)


@dataclass(frozen=True)
class CompressionSpec:
    """Lossy size reduction at a quality fraction in [0, 1]."""
    quality: float

    def __post_init__(self):
        if not 0.0 <= self.quality <= 1.0:
            raise ValueError(f"quality must be within [0, 1], got {self.quality}")


@dataclass(frozen=True)
class ConversionSpec:
    """Format conversion to JPEG or PNG."""
    target_format: OutputFormat


ProcessingSpec = Union[CompressionSpec, ConversionSpec]


@dataclass(frozen=True)
class ReencodeResult:
    """Output of one compress or convert call."""
    output_bytes: bytes
    media_type: str
    width: int
    height: int

    @property
    def output_byte_length(self) -> int:
        return len(self.output_bytes)


class SessionState:
    """
    Process-wide state: the batch for the document workflow and two
    independent single-image slots for compression and conversion.
    Replacing a slot discards its previous value.
    """

    def __init__(self, batch_capacity: int = DEFAULT_BATCH_CAPACITY):
        self._batch = BatchCollection(capacity=batch_capacity)
        self._compression_image: Optional[ImageItem] = None
        self._conversion_image: Optional[ImageItem] = None

    def get_batch(self) -> BatchCollection:
        return self._batch

    def set_batch(self, batch: BatchCollection) -> None:
        self._batch = batch

    def clear_batch(self) -> None:
        self._batch.clear()

    def get_compression_image(self) -> Optional[ImageItem]:
        return self._compression_image

    def set_compression_image(self, item: ImageItem) -> None:
        self._compression_image = item

    def clear_compression_image(self) -> None:
        self._compression_image = None

    def get_conversion_image(self) -> Optional[ImageItem]:
        return self._conversion_image

    def set_conversion_image(self, item: ImageItem) -> None:
        self._conversion_image = item

    def clear_conversion_image(self) -> None:
        self._conversion_image = None


@dataclass
class Settings:
    """Application settings for page layout and re-encoding policy."""
    # Page geometry in millimetres (A4 portrait)
    page_width: float = 210.0
    page_height: float = 297.0
    margin: float = 10.0

    # Batch
    batch_capacity: int = DEFAULT_BATCH_CAPACITY

    # Compression
    compression_quality: float = 0.8  # 0.0-1.0, initial slider value
    max_dimension: int = DEFAULT_MAX_DIMENSION  # Long edge limit, px
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES

    # Conversion
    conversion_quality: float = DEFAULT_CONVERSION_QUALITY

    # Output naming
    pdf_default_name: str = "converted_images"

    def to_dict(self) -> dict:
        """Serialize settings to dictionary."""
        return {
            "page_width": self.page_width,
            "page_height": self.page_height,
            "margin": self.margin,
            "batch_capacity": self.batch_capacity,
            "compression_quality": self.compression_quality,
            "max_dimension": self.max_dimension,
            "max_output_bytes": self.max_output_bytes,
            "conversion_quality": self.conversion_quality,
            "pdf_default_name": self.pdf_default_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Deserialize settings from dictionary."""
        settings = cls()

        if "page_width" in data:
            settings.page_width = float(data["page_width"])
        if "page_height" in data:
            settings.page_height = float(data["page_height"])
        if "margin" in data:
            settings.margin = float(data["margin"])
        if "batch_capacity" in data:
            capacity = int(data["batch_capacity"])
            if capacity > 0:
                settings.batch_capacity = capacity
        if "compression_quality" in data:
            quality = float(data["compression_quality"])
            if 0.0 <= quality <= 1.0:
                settings.compression_quality = quality
        if "max_dimension" in data:
            settings.max_dimension = int(data["max_dimension"])
        if "max_output_bytes" in data:
            settings.max_output_bytes = int(data["max_output_bytes"])
        if "conversion_quality" in data:
            quality = float(data["conversion_quality"])
            if 0.0 <= quality <= 1.0:
                settings.conversion_quality = quality
        if "pdf_default_name" in data and str(data["pdf_default_name"]).strip():
            settings.pdf_default_name = str(data["pdf_default_name"]).strip()

        return settings

    @classmethod
    def load_from_file(cls, path: Path) -> "Settings":
        """Load settings from JSON file, or return defaults if file doesn't exist."""
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return cls.from_dict(json.load(f))
            except (json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError):
                pass
        return cls()
