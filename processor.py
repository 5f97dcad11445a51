"""
Image processing module.
Handles page layout fitting, PDF assembly, and JPEG/PNG re-encoding.
"""

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError
from typing import Iterable, Optional
import logging
import io

from models import (
    ImageItem, PageLayout, OutputFormat, CompressionSpec, ConversionSpec,
    ProcessingSpec, ReencodeResult, Settings,
    EmptyBatch, DecodeFailure, EncodeFailure, CompressionFailure,
    DEFAULT_MAX_DIMENSION, DEFAULT_MAX_OUTPUT_BYTES, DEFAULT_CONVERSION_QUALITY
)

# Configure logging
logging.basicConfig(
    filename='app.log',
    level=logging.DEBUG,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# PDF points per millimetre
MM_TO_PT = 72.0 / 25.4

# Formats PyMuPDF can embed straight from the source bytes
EMBEDDABLE_FORMATS = ("JPEG", "PNG")

# Quality walk for size-capped compression (JPEG quality scale 1-100)
QUALITY_STEP = 5
MIN_JPEG_QUALITY = 5

# Longest edge of list and slot previews, in pixels
THUMBNAIL_SIZE = 48

# Errors Pillow raises on truncated or unrecognised data
DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def fit_image(
    page_width: float,
    page_height: float,
    margin: float,
    image_width: float,
    image_height: float
) -> PageLayout:
    """
    Fit an image inside the page minus margins, preserving aspect ratio,
    and center it on the full page.

    The image is scaled up or down by a single factor so that it touches the
    content region on at least one axis.

    Raises:
        ValueError: if an image dimension is not positive or the margins
            leave no content region.
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {image_width}x{image_height}")

    content_width = page_width - 2 * margin
    content_height = page_height - 2 * margin
    if content_width <= 0 or content_height <= 0:
        raise ValueError(f"Margin {margin} leaves no content region on a {page_width}x{page_height} page")

    scale = min(content_width / image_width, content_height / image_height)
    final_width = image_width * scale
    final_height = image_height * scale

    return PageLayout(
        page_width=page_width,
        page_height=page_height,
        margin=margin,
        x=(page_width - final_width) / 2,
        y=(page_height - final_height) / 2,
        width=final_width,
        height=final_height
    )


def decode_image(item: ImageItem) -> Image.Image:
    """
    Decode an image payload to a fully loaded Pillow raster (first frame only).

    Raises:
        DecodeFailure: naming the item if the bytes are not a readable raster.
    """
    try:
        img = Image.open(io.BytesIO(item.data))
        img.load()
    except DECODE_ERRORS as e:
        raise DecodeFailure(item.name, str(e)) from e
    return img


def flatten_to_rgb(img: Image.Image, background: tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
    """Convert to RGB, compositing any transparency onto a solid background."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        base = Image.new("RGB", rgba.size, background)
        base.paste(rgba, mask=rgba.getchannel("A"))
        return base
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def make_thumbnail(item: ImageItem, size: int = THUMBNAIL_SIZE) -> Optional[Image.Image]:
    """Small RGBA preview of an image, or None if it cannot be decoded."""
    try:
        img = decode_image(item)
    except DecodeFailure:
        logger.warning(f"No preview for {item.name}")
        return None
    try:
        preview = img.convert("RGBA")
        preview.thumbnail((size, size), Image.Resampling.LANCZOS)
    except (OSError, ValueError):
        logger.warning(f"No preview for {item.name}")
        return None
    return preview


def page_count(pdf_bytes: bytes) -> int:
    """Number of pages in a PDF payload."""
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return doc.page_count


class DocumentAssembler:
    """
    Assembles an ordered sequence of images into a PDF, one page per image.

    Every page has the same fixed size; each image is fitted inside the
    margins and centered.
    """

    def __init__(self, page_width: float = 210.0, page_height: float = 297.0, margin: float = 10.0):
        self.page_width = page_width
        self.page_height = page_height
        self.margin = margin

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentAssembler":
        return cls(settings.page_width, settings.page_height, settings.margin)

    def layout_for(self, img: Image.Image) -> PageLayout:
        """Compute the placement of a decoded image on a page."""
        width, height = img.size
        return fit_image(self.page_width, self.page_height, self.margin, width, height)

    def assemble(self, items: Iterable[ImageItem]) -> bytes:
        """
        Build the PDF and return its bytes.

        The item sequence is copied up front, so later changes to the caller's
        collection do not affect the output. Any image that fails to decode
        aborts the whole document.

        Raises:
            EmptyBatch: if there are no items.
            DecodeFailure: naming the first item that cannot be decoded or embedded.
        """
        snapshot = tuple(items)
        if not snapshot:
            raise EmptyBatch()

        doc = fitz.open()
        try:
            for index, item in enumerate(snapshot):
                self._insert_page(doc, item)
                logger.debug(f"Page {index + 1}/{len(snapshot)}: {item.name}")
            pdf_bytes = doc.tobytes(garbage=3, deflate=True)
        finally:
            doc.close()

        logger.info(f"Assembled {len(snapshot)}-page PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _insert_page(self, doc: fitz.Document, item: ImageItem) -> None:
        """Decode, fit and place a single image on a new page."""
        img = decode_image(item)
        try:
            layout = self.layout_for(img)
        except ValueError as e:
            raise DecodeFailure(item.name, str(e)) from e

        stream = self._embeddable_bytes(img, item)
        del img

        page = doc.new_page(
            width=self.page_width * MM_TO_PT,
            height=self.page_height * MM_TO_PT
        )
        try:
            page.insert_image(fitz.Rect(*layout.scaled(MM_TO_PT)), stream=stream)
        except Exception as e:
            raise DecodeFailure(item.name, str(e)) from e

    @staticmethod
    def _embeddable_bytes(img: Image.Image, item: ImageItem) -> bytes:
        """Original payload for JPEG/PNG, a PNG re-encoding for anything else."""
        if img.format in EMBEDDABLE_FORMATS:
            return item.data
        buffer = io.BytesIO()
        if img.mode not in ("1", "L", "LA", "RGB", "RGBA"):
            img = img.convert("RGBA")
        try:
            img.save(buffer, format="PNG")
        except (OSError, ValueError) as e:
            raise DecodeFailure(item.name, str(e)) from e
        return buffer.getvalue()


class ReencodePipeline:
    """
    Single-image re-encoding: lossy compression to JPEG, or conversion to
    JPEG/PNG. Each call is independent; nothing is retried.
    """

    def __init__(
        self,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        conversion_quality: float = DEFAULT_CONVERSION_QUALITY
    ):
        self.max_dimension = max_dimension
        self.max_output_bytes = max_output_bytes
        self.conversion_quality = conversion_quality

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReencodePipeline":
        return cls(
            max_dimension=settings.max_dimension,
            max_output_bytes=settings.max_output_bytes,
            conversion_quality=settings.conversion_quality
        )

    def run(self, image: ImageItem, spec: ProcessingSpec) -> ReencodeResult:
        """Apply a compression or conversion spec to one image."""
        if isinstance(spec, CompressionSpec):
            return self.compress(image, spec.quality)
        if isinstance(spec, ConversionSpec):
            return self.convert(image, spec.target_format)
        raise TypeError(f"Unknown processing spec: {spec!r}")

    def compress(
        self,
        image: ImageItem,
        quality: float,
        max_dimension: Optional[int] = None
    ) -> ReencodeResult:
        """
        Re-encode an image as JPEG at the given quality fraction.

        Images whose long edge exceeds `max_dimension` are downscaled
        proportionally first. If the result is still larger than
        `max_output_bytes`, quality is lowered step by step until it fits
        or reaches the floor.

        Raises:
            CompressionFailure: if the image cannot be decoded or encoded.
        """
        if not 0.0 <= quality <= 1.0:
            raise ValueError(f"quality must be within [0, 1], got {quality}")
        if max_dimension is None:
            max_dimension = self.max_dimension

        try:
            img = decode_image(image)
        except DecodeFailure as e:
            raise CompressionFailure(f"Cannot compress {image.name}: {e}") from e

        try:
            img = flatten_to_rgb(self.limit_dimensions(img, max_dimension))
        except (OSError, ValueError) as e:
            raise CompressionFailure(f"Cannot compress {image.name}: {e}") from e

        jpeg_quality = self._to_jpeg_quality(quality)
        data = self._encode_jpeg(img, jpeg_quality, image.name)
        while len(data) > self.max_output_bytes and jpeg_quality > MIN_JPEG_QUALITY:
            jpeg_quality = max(MIN_JPEG_QUALITY, jpeg_quality - QUALITY_STEP)
            logger.debug(f"{image.name}: {len(data)} bytes over limit, retrying at quality {jpeg_quality}")
            data = self._encode_jpeg(img, jpeg_quality, image.name)

        logger.info(
            f"Compressed {image.name}: {image.size_bytes} -> {len(data)} bytes "
            f"(quality {jpeg_quality}, {img.width}x{img.height})"
        )
        return ReencodeResult(
            output_bytes=data,
            media_type=OutputFormat.JPEG.media_type,
            width=img.width,
            height=img.height
        )

    def convert(self, image: ImageItem, target_format: OutputFormat) -> ReencodeResult:
        """
        Decode an image and re-encode it in the target format at the
        conversion quality. Pixel dimensions are preserved.

        Raises:
            DecodeFailure: if the source cannot be decoded.
            EncodeFailure: if the encoder rejects the raster or returns nothing.
        """
        img = decode_image(image)
        width, height = img.size
        if width == 0 or height == 0:
            raise EncodeFailure(f"Cannot encode {image.name}: image has zero size")

        buffer = io.BytesIO()
        try:
            if target_format == OutputFormat.JPEG:
                img = flatten_to_rgb(img)
                img.save(buffer, format="JPEG", quality=self._to_jpeg_quality(self.conversion_quality))
            else:
                if img.mode not in ("1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"):
                    img = img.convert("RGBA")
                img.save(buffer, format="PNG")
        except (OSError, ValueError, KeyError) as e:
            raise EncodeFailure(f"Cannot encode {image.name} as {target_format.value}: {e}") from e

        data = buffer.getvalue()
        if not data:
            raise EncodeFailure(f"Encoding {image.name} as {target_format.value} produced no output")

        logger.info(f"Converted {image.name} to {target_format.value} ({len(data)} bytes)")
        return ReencodeResult(
            output_bytes=data,
            media_type=target_format.media_type,
            width=width,
            height=height
        )

    @staticmethod
    def limit_dimensions(img: Image.Image, max_dimension: int) -> Image.Image:
        """Downscale so the long edge is at most max_dimension. Never upscales."""
        width, height = img.size
        long_edge = max(width, height)
        if max_dimension <= 0 or long_edge <= max_dimension:
            return img
        scale = max_dimension / long_edge
        new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
        if img.mode == "P":
            img = img.convert("RGBA")
        return img.resize(new_size, Image.Resampling.LANCZOS)

    @staticmethod
    def _to_jpeg_quality(fraction: float) -> int:
        """Map a [0, 1] quality fraction onto Pillow's 1-100 JPEG scale."""
        return max(1, min(100, round(fraction * 100)))

    @staticmethod
    def _encode_jpeg(img: Image.Image, quality: int, name: str) -> bytes:
        buffer = io.BytesIO()
        try:
            img.save(buffer, format="JPEG", quality=quality, optimize=True)
        except (OSError, ValueError) as e:
            raise CompressionFailure(f"Cannot compress {name}: {e}") from e
        data = buffer.getvalue()
        if not data:
            raise CompressionFailure(f"Compressing {name} produced no output")
        return data
