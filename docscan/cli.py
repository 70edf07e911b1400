"""Command-line interface for document scanning."""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
from dotenv import load_dotenv

from docscan import __version__
from docscan.output.encoder import save_image
from docscan.pipeline import Pipeline, ScanOptions

# Load environment variables from .env
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)

logger = logging.getLogger(__name__)

_IMAGE_PATTERNS = [
    '*.jpg', '*.JPG', '*.jpeg', '*.JPEG', '*.png', '*.PNG', '*.webp', '*.WEBP',
    '*.tif', '*.tiff', '*.heic', '*.HEIC', '*.dng', '*.DNG',
]


def _collect_inputs(input_paths: tuple, batch: bool, filter_pattern: Optional[str]) -> List[Path]:
    input_files: List[Path] = []

    for input_path_str in input_paths:
        input_path = Path(input_path_str)

        if input_path.is_file():
            input_files.append(input_path)
        elif input_path.is_dir():
            if not batch:
                logger.error(f"Directory provided but --batch not specified: {input_path}")
                sys.exit(1)
            patterns = [filter_pattern] if filter_pattern else _IMAGE_PATTERNS
            for pattern in patterns:
                input_files.extend(sorted(input_path.glob(pattern)))
        else:
            logger.error(f"Invalid input path: {input_path}")
            sys.exit(1)

    # Case-insensitive filesystems match both spellings of a pattern
    return list(dict.fromkeys(input_files))


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """docscan - Turn photos of paper documents into flat, clean scans."""
    pass


@main.command()
@click.argument('input_paths', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--output', '-o', 'output_dir', type=click.Path(), default='./output',
              help='Output directory for scanned pages')
@click.option('--mode', type=click.Choice(['bw', 'color']), default=None,
              help='Black/white (thresholded) or color-preserved output')
@click.option('--block-size', type=int, default=None,
              help='Adaptive threshold window (forced odd, >= 3)')
@click.option('--offset', type=click.IntRange(0, 100), default=None,
              help='Adaptive threshold darkness bias in percent')
@click.option('--threshold', 'threshold_method', type=click.Choice(['adaptive', 'global']),
              default=None, help='Thresholding algorithm for bw mode')
@click.option('--max-size', 'max_output_size', type=click.IntRange(min=1), default=None,
              help='Maximum output edge length in pixels')
@click.option('--format', 'output_format', type=click.Choice(['png', 'jpeg']), default=None,
              help='Output file format')
@click.option('--quality', type=click.IntRange(1, 100), default=None, help='JPEG quality')
@click.option('--batch', is_flag=True, help='Process all images in directory')
@click.option('--filter', 'filter_pattern', type=str,
              help='Glob pattern to filter files (e.g., "*.jpg")')
@click.option('--debug', is_flag=True, help='Save debug visualizations at each pipeline step')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def scan(
    input_paths: tuple,
    output_dir: str,
    mode: Optional[str],
    block_size: Optional[int],
    offset: Optional[int],
    threshold_method: Optional[str],
    max_output_size: Optional[int],
    output_format: Optional[str],
    quality: Optional[int],
    batch: bool,
    filter_pattern: Optional[str],
    debug: bool,
    verbose: bool
) -> None:
    """Scan document photos into flattened pages.

    INPUT_PATHS: One or more image files or directories to process
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        options = ScanOptions.from_env(
            output_mode=mode,
            block_size=block_size,
            offset=offset,
            threshold_method=threshold_method,
            max_output_size=max_output_size,
            output_format=output_format,
            quality=quality,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    input_files = _collect_inputs(input_paths, batch, filter_pattern)
    if not input_files:
        logger.error("No input files found")
        sys.exit(1)

    logger.info(f"Processing {len(input_files)} file(s)")

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    debug_dir = None
    if debug:
        debug_dir = Path('./debug')
        debug_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Debug output will be saved to: {debug_dir}")

    pipeline = Pipeline(options)
    succeeded = 0

    for input_file in input_files:
        try:
            file_debug_dir = debug_dir / input_file.stem if debug_dir else None
            result = pipeline.process(
                str(input_file),
                debug_output_dir=str(file_debug_dir) if file_debug_dir else None,
            )

            saved = save_image(
                result.image,
                output_path / f"{input_file.stem}_scan",
                options.output_format,
                options.quality,
            )
            succeeded += 1

            logger.info(f"Saved: {saved.name}")
            logger.info(f"  Output size: {result.image.shape[1]}x{result.image.shape[0]}")
            logger.info(f"  Steps completed: {', '.join(result.steps_completed)}")
            if result.fallbacks:
                logger.info(f"  Fallbacks: {', '.join(result.fallbacks)}")
            logger.info(f"  Processing time: {result.processing_time:.3f}s")

        except Exception as e:
            logger.error(f"Error processing {input_file}: {e}", exc_info=verbose)
            continue

    logger.info(f"COMPLETE: Processed {succeeded}/{len(input_files)} file(s)")
    logger.info(f"Output directory: {output_path.absolute()}")


@main.command()
@click.argument('input_path', type=click.Path(exists=True, dir_okay=False))
def detect(input_path: str) -> None:
    """Print the detected document corners of INPUT_PATH."""
    from docscan.detection.corners import detect_corners
    from docscan.preprocessing.loader import load_image
    from docscan.preprocessing.normalizer import downscale

    options = ScanOptions.from_env()
    pixels, _ = load_image(input_path)
    working = downscale(pixels, options.max_processing_size)
    detection = detect_corners(working.image, sigma=options.blur_sigma)

    scale = working.scale_factor
    labels = ('top_left', 'top_right', 'bottom_right', 'bottom_left')
    for label, (x, y) in zip(labels, detection.corners):
        click.echo(f"{label}: {x / scale:.1f}, {y / scale:.1f}")
    click.echo(f"method: {detection.method_used}")
    if detection.is_fallback:
        click.echo(f"fallback: {detection.failure_reason}")


if __name__ == '__main__':
    main()
