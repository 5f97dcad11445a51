"""
CLI wrapper for the image toolbox.
Provides command-line access to the Image to PDF, Compressor and Converter tools.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from models import ImageItem, OutputFormat, SessionState, Settings
from workflows import (
    Outcome, add_image_files, export_pdf, load_compression_image, compress_image,
    load_conversion_image, convert_image, check_output_writable, format_bytes
)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="imagetoolbox",
        description="Combine images into a PDF, compress an image, or convert it to JPG/PNG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s pdf scan1.png scan2.jpg -n homework
  %(prog)s compress photo.png -q 60 -o out/
  %(prog)s convert logo.webp --to png
"""
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to settings JSON file"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    pdf_parser = subparsers.add_parser("pdf", help="Combine images into a PDF, one page per image")
    pdf_parser.add_argument("images", nargs="+", help="Input image files, in page order")

    compress_parser = subparsers.add_parser("compress", help="Compress an image to JPEG")
    compress_parser.add_argument("image", help="Input image file")
    compress_parser.add_argument(
        "-q", "--quality",
        type=int,
        default=None,
        help="JPEG quality 0-100 (default: from settings, 80)"
    )
    compress_parser.add_argument(
        "--max-dimension",
        type=int,
        default=None,
        help="Maximum width or height in pixels (default: 1920)"
    )

    convert_parser = subparsers.add_parser("convert", help="Convert an image to JPG or PNG")
    convert_parser.add_argument("image", help="Input image file")
    convert_parser.add_argument(
        "--to",
        type=str,
        choices=["jpg", "jpeg", "png"],
        required=True,
        help="Target format"
    )

    for sub in (pdf_parser, compress_parser, convert_parser):
        sub.add_argument(
            "-o", "--output-dir",
            type=str,
            default=".",
            help="Directory to write the result into (default: current directory)"
        )
        sub.add_argument(
            "-n", "--name",
            type=str,
            default="",
            help="Output file name without extension (default: derived from input)"
        )

    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    """Load settings from --config and apply command-line overrides."""
    settings = Settings.load_from_file(Path(args.config)) if args.config else Settings()
    if getattr(args, "max_dimension", None) is not None:
        settings.max_dimension = args.max_dimension
    return settings


def run_command(args: argparse.Namespace, settings: Settings, session: SessionState) -> Outcome:
    """Run the selected tool against the session."""
    if args.command == "pdf":
        outcome = add_image_files(session, args.images)
        if not outcome.ok:
            return outcome
        if args.verbose:
            print(outcome.status.message)
        return export_pdf(session, settings, args.name)

    item = ImageItem.from_path(args.image)
    if args.verbose:
        print(f"Input:  {item.name} ({format_bytes(item.size_bytes)})")

    if args.command == "compress":
        load_compression_image(session, item)
        quality = None if args.quality is None else args.quality / 100
        return compress_image(session, settings, quality, args.name)

    load_conversion_image(session, item)
    return convert_image(session, settings, OutputFormat.from_name(args.to), args.name)


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)
    settings = load_settings(args)
    session = SessionState(batch_capacity=settings.batch_capacity)

    inputs = args.images if args.command == "pdf" else [args.image]
    for path in inputs:
        if not Path(path).is_file():
            print(f"Error: Input file not found: {path}", file=sys.stderr)
            return 1

    if args.command == "compress" and args.quality is not None and not 0 <= args.quality <= 100:
        print("Error: --quality must be between 0 and 100", file=sys.stderr)
        return 1

    try:
        outcome = run_command(args, settings, session)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not outcome.ok:
        print(outcome.status.message, file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir)
    output_path = output_dir / outcome.output.name
    writable, error = check_output_writable(output_path)
    if not writable:
        print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        written = outcome.output.write(output_dir)
    except OSError as e:
        print(f"Error: Failed to write {output_path}: {e}", file=sys.stderr)
        return 1

    print(outcome.status.message)
    if args.verbose:
        print(f"Output: {written} ({format_bytes(outcome.output.size_bytes)})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
