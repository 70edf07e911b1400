"""Main pipeline orchestrator for document scanning.

Loaded -> CornersDetected -> Flattened -> [Thresholded] -> Encoded

Geometric failures never abort a scan: missing corners fall back to an inset
rectangle and a singular homography falls back to the untransformed image.
Only input errors (no decodable pixels) propagate to the caller.
"""

import logging
import os
import time
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from docscan.detection.corners import CornerDetection, detect_corners
from docscan.detection.edges import DEFAULT_BLUR_SIGMA, compute_edge_map
from docscan.errors import SingularTransformError
from docscan.geometry.perspective import correct_perspective
from docscan.output.encoder import encode_image, normalize_format
from docscan.preprocessing.loader import ImageMetadata, as_pixel_buffer, load_image, load_image_bytes
from docscan.preprocessing.normalizer import MAX_PROCESSING_SIZE, downscale
from docscan.threshold.adaptive import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_GLOBAL_THRESHOLD,
    DEFAULT_OFFSET,
    apply_adaptive_threshold,
    apply_global_threshold,
)

logger = logging.getLogger(__name__)

OUTPUT_MODES = ("binary", "color")
THRESHOLD_METHODS = ("adaptive", "global")

_ENV_PREFIX = "DOCSCAN_"
_OUTPUT_MODE_ALIASES = {"bw": "binary", "colour": "color"}


@dataclass
class ScanOptions:
    """All tunable parameters in one place."""

    # Thresholding
    block_size: int = DEFAULT_BLOCK_SIZE
    offset: int = DEFAULT_OFFSET
    threshold_method: str = "adaptive"  # "adaptive" (Bradley) or "global"
    global_threshold: int = DEFAULT_GLOBAL_THRESHOLD

    # Output
    output_mode: str = "binary"  # "binary" or "color"
    max_output_size: int = 2048  # px, longest edge
    output_format: str = "png"   # forwarded to the encoder
    quality: int = 90            # JPEG quality, forwarded to the encoder

    # Processing bounds
    max_processing_size: int = MAX_PROCESSING_SIZE
    blur_sigma: float = DEFAULT_BLUR_SIGMA

    def __post_init__(self) -> None:
        self.output_mode = _OUTPUT_MODE_ALIASES.get(self.output_mode.lower(), self.output_mode.lower())
        if self.output_mode not in OUTPUT_MODES:
            raise ValueError(f"Unknown output mode: {self.output_mode!r}. Use 'binary' or 'color'.")

        self.threshold_method = self.threshold_method.lower()
        if self.threshold_method not in THRESHOLD_METHODS:
            raise ValueError(
                f"Unknown threshold method: {self.threshold_method!r}. Use 'adaptive' or 'global'."
            )

        self.output_format = normalize_format(self.output_format)

        if self.max_output_size <= 0 or self.max_processing_size <= 0:
            raise ValueError("Size limits must be positive")
        if not 0 <= self.offset <= 100:
            raise ValueError(f"offset must be within 0-100, got {self.offset}")
        if not 1 <= self.quality <= 100:
            raise ValueError(f"quality must be within 1-100, got {self.quality}")

    @classmethod
    def from_env(cls, **overrides) -> "ScanOptions":
        """Build options from DOCSCAN_* environment variables.

        For example DOCSCAN_BLOCK_SIZE=21 sets block_size. Keyword overrides
        whose value is not None take precedence over the environment.
        """
        values: Dict[str, object] = {}
        for f in fields(cls):
            raw = os.getenv(_ENV_PREFIX + f.name.upper())
            if raw is None or not raw.strip():
                continue
            try:
                values[f.name] = _coerce(raw.strip(), f.default)
            except ValueError:
                logger.warning(f"Ignoring invalid {_ENV_PREFIX}{f.name.upper()}={raw!r}")

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _coerce(raw: str, default: object) -> object:
    if isinstance(default, bool):
        return raw.lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


@dataclass
class ScanResult:
    """Result of a single scan."""

    image: np.ndarray  # uint8 RGBA, shape (H, W, 4)
    detection: CornerDetection
    processing_time: float
    steps_completed: List[str]
    fallbacks: List[str] = field(default_factory=list)
    metadata: Optional[ImageMetadata] = None
    processing_scale: float = 1.0  # working image size / input size
    step_times: Dict[str, float] = field(default_factory=dict)

    @property
    def used_fallback(self) -> bool:
        return bool(self.fallbacks)


class Pipeline:
    """Document scanning pipeline: detect, flatten, threshold."""

    def __init__(self, options: Optional[ScanOptions] = None) -> None:
        """Initialize pipeline with options.

        Args:
            options: Scan options. If None, uses defaults.
        """
        self.options = options or ScanOptions()
        self.step_times: dict = {}

    def process_buffer(
        self,
        pixels: np.ndarray,
        debug_output_dir: Optional[str] = None,
        metadata: Optional[ImageMetadata] = None,
    ) -> ScanResult:
        """Run the scan on a decoded RGBA buffer.

        Args:
            pixels: Pixel buffer, uint8, shape (H, W, 4) (RGB is accepted).
            debug_output_dir: Optional directory for per-step debug images.
            metadata: Optional decode metadata to carry into the result.

        Returns:
            ScanResult with the flattened (and possibly binarized) page.

        Raises:
            MissingDimensionsError: If the buffer has no usable dimensions.
        """
        opts = self.options
        start_time = time.time()
        self.step_times = {}
        steps_completed: List[str] = []
        fallbacks: List[str] = []
        debug_dir: Optional[Path] = None

        if debug_output_dir:
            debug_dir = Path(debug_output_dir)
            debug_dir.mkdir(parents=True, exist_ok=True)

        # Step 1: Loaded (bounded to the processing cap)
        step_start = time.time()
        image = as_pixel_buffer(pixels)
        norm = downscale(image, opts.max_processing_size, interpolation=cv2.INTER_AREA)
        working = norm.image
        self.step_times['load'] = time.time() - step_start
        steps_completed.append('loaded')

        if debug_dir:
            from docscan.utils.debug import save_debug_image
            save_debug_image(working, debug_dir / "01_loaded.jpg", "Working image")

        # Step 2: CornersDetected
        step_start = time.time()
        edges = compute_edge_map(working, opts.blur_sigma)
        detection = detect_corners(working, sigma=opts.blur_sigma, edge_map=edges)
        if detection.is_fallback:
            fallbacks.append('default_corners')
        self.step_times['detect'] = time.time() - step_start
        steps_completed.append('corners_detected')
        logger.info(f"Corner detection time: {self.step_times['detect']:.3f}s")

        if debug_dir:
            from docscan.detection.corners import draw_corner_detection
            from docscan.utils.debug import save_debug_image
            save_debug_image(
                edges,
                debug_dir / "02_edges.jpg",
                "Sobel edge magnitude"
            )
            save_debug_image(
                draw_corner_detection(working, detection),
                debug_dir / "03_corners.jpg",
                f"Corners (method={detection.method_used}, fallback={detection.is_fallback})"
            )
        del edges

        # Step 3: Flattened
        step_start = time.time()
        try:
            page = correct_perspective(working, detection.corners)
        except SingularTransformError as e:
            logger.warning(f"Perspective correction failed, using untransformed image: {e}")
            fallbacks.append('untransformed')
            page = working.copy()
        self.step_times['flatten'] = time.time() - step_start
        steps_completed.append('flattened')
        logger.info(f"Perspective time: {self.step_times['flatten']:.3f}s")

        if debug_dir:
            from docscan.utils.debug import save_debug_image
            save_debug_image(page, debug_dir / "04_flattened.jpg", "After perspective correction")

        # Step 4: Thresholded (binary mode only)
        if opts.output_mode == "binary":
            step_start = time.time()
            if opts.threshold_method == "global":
                page = apply_global_threshold(page, opts.global_threshold)
            else:
                page = apply_adaptive_threshold(page, opts.block_size, opts.offset)
            self.step_times['threshold'] = time.time() - step_start
            steps_completed.append('thresholded')
            logger.info(f"Threshold time: {self.step_times['threshold']:.3f}s")

            if debug_dir:
                from docscan.utils.debug import save_debug_image
                save_debug_image(page, debug_dir / "05_thresholded.jpg", "After thresholding")
        else:
            logger.info("Color output requested, skipping threshold")

        # Output size bound
        page = downscale(page, opts.max_output_size, interpolation=cv2.INTER_LANCZOS4).image

        total_time = time.time() - start_time
        logger.info(
            f"Scan complete: {page.shape[1]}x{page.shape[0]} in {total_time:.3f}s"
            + (f" (fallbacks: {', '.join(fallbacks)})" if fallbacks else "")
        )

        return ScanResult(
            image=page,
            detection=detection,
            processing_time=total_time,
            steps_completed=steps_completed,
            fallbacks=fallbacks,
            metadata=metadata,
            processing_scale=norm.scale_factor,
            step_times=dict(self.step_times),
        )

    def process(
        self,
        input_path: str,
        debug_output_dir: Optional[str] = None,
    ) -> ScanResult:
        """Decode an image file and scan it.

        Args:
            input_path: Path to input image
            debug_output_dir: Optional directory for debug output

        Returns:
            ScanResult with the processed page and metadata
        """
        logger.info(f"Processing: {input_path}")
        pixels, metadata = load_image(input_path)
        return self.process_buffer(pixels, debug_output_dir=debug_output_dir, metadata=metadata)

    def scan_bytes(self, data: bytes) -> Tuple[bytes, ScanResult]:
        """Decode an in-memory image, scan it and encode the result.

        Returns:
            Tuple of (encoded PNG/JPEG bytes, ScanResult)

        Raises:
            ImageDecodeError: If the data is not a decodable image.
        """
        pixels, metadata = load_image_bytes(data)
        result = self.process_buffer(pixels, metadata=metadata)

        step_start = time.time()
        encoded = encode_image(result.image, self.options.output_format, self.options.quality)
        self.step_times['encode'] = time.time() - step_start
        result.step_times['encode'] = self.step_times['encode']
        result.steps_completed.append('encoded')

        return encoded, result


def scan_document(data: bytes, options: Optional[ScanOptions] = None) -> bytes:
    """Scan an encoded image and return the encoded result."""
    encoded, _ = Pipeline(options).scan_bytes(data)
    return encoded
