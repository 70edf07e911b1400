"""Perspective correction by pull-resampling through a homography.

Every destination pixel is mapped back into the source image with the inverse
homography (destination rectangle -> source quadrilateral) and sampled with
bilinear interpolation. Rows are independent, so the warp is done in bands
of rows to bound peak memory.
"""

import logging

import numpy as np

from docscan.geometry.homography import (
    apply_homography,
    compute_homography,
    compute_output_dimensions,
)

logger = logging.getLogger(__name__)

_ROWS_PER_BAND = 256


def bilinear_sample(pixels: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """Sample all channels at real-valued coordinates.

    Coordinates are clamped into [0, width-1] x [0, height-1]; results are
    rounded half-up.

    Args:
        pixels: Source buffer, uint8, shape (H, W, C).
        xs: X coordinates, any shape S.
        ys: Y coordinates, same shape S.

    Returns:
        Samples, uint8, shape S + (C,).
    """
    height, width = pixels.shape[:2]
    xs = np.clip(xs, 0, width - 1)
    ys = np.clip(ys, 0, height - 1)

    x0 = np.floor(xs).astype(np.int64)
    y0 = np.floor(ys).astype(np.int64)
    x1 = np.minimum(x0 + 1, width - 1)
    y1 = np.minimum(y0 + 1, height - 1)

    x_frac = (xs - x0)[..., np.newaxis]
    y_frac = (ys - y0)[..., np.newaxis]

    # Gather uint8 taps first; only the gathered samples are promoted to float.
    top = pixels[y0, x0] * (1 - x_frac) + pixels[y0, x1] * x_frac
    bottom = pixels[y1, x0] * (1 - x_frac) + pixels[y1, x1] * x_frac
    value = top * (1 - y_frac) + bottom * y_frac

    return np.clip(np.floor(value + 0.5), 0, 255).astype(np.uint8)


def warp_perspective(
    pixels: np.ndarray,
    h: np.ndarray,
    width: int,
    height: int,
) -> np.ndarray:
    """Resample a (width x height) output through homography h.

    Args:
        pixels: Source buffer, uint8, shape (H, W, C).
        h: Homography mapping output coordinates to source coordinates.
        width: Output width.
        height: Output height.

    Returns:
        Warped buffer, uint8, shape (height, width, C).
    """
    channels = pixels.shape[2]
    output = np.empty((height, width, channels), dtype=np.uint8)
    xs = np.arange(width, dtype=np.float64)

    for band_start in range(0, height, _ROWS_PER_BAND):
        band_end = min(height, band_start + _ROWS_PER_BAND)
        ys = np.arange(band_start, band_end, dtype=np.float64)
        grid_x, grid_y = np.meshgrid(xs, ys)
        src_x, src_y = apply_homography(h, grid_x, grid_y)
        output[band_start:band_end] = bilinear_sample(pixels, src_x, src_y)

    return output


def correct_perspective(pixels: np.ndarray, corners: np.ndarray) -> np.ndarray:
    """Flatten the quadrilateral bounded by corners into a rectangle.

    Args:
        pixels: Source buffer, uint8 RGBA, shape (H, W, 4).
        corners: Ordered corner points (4, 2) as [TL, TR, BR, BL].

    Returns:
        Flattened buffer, uint8 RGBA.

    Raises:
        SingularTransformError: If the corners do not define a valid transform.
    """
    width, height = compute_output_dimensions(corners)

    destination = np.array([
        [0, 0],
        [width - 1, 0],
        [width - 1, height - 1],
        [0, height - 1],
    ], dtype=np.float64)

    # Pull mapping: destination rectangle -> source quadrilateral.
    h = compute_homography(destination, corners)
    warped = warp_perspective(pixels, h, width, height)

    logger.info(
        f"Perspective corrected: {pixels.shape[1]}x{pixels.shape[0]} -> {width}x{height}"
    )
    return warped
