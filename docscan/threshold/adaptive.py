"""Black/white conversion of flattened pages.

The adaptive path is Bradley's algorithm: each pixel is compared with the mean
of its block_size x block_size neighbourhood, looked up in O(1) from an
integral image. This tolerates uneven lighting across the page that a single
global cutoff would misclassify.
"""

import logging
from typing import Union

import numpy as np

from docscan.detection.edges import to_luminance

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 15
DEFAULT_OFFSET = 10
DEFAULT_GLOBAL_THRESHOLD = 128

# Integer luminance weights (thousandths) so local sums are exact.
_LUMA_WEIGHTS_MILLI = (299, 587, 114)

_ROWS_PER_BAND = 256

IntOrArray = Union[int, np.ndarray]


def normalize_block_size(block_size: int) -> int:
    """Force the window size to be odd and at least 3."""
    return max(3, int(block_size) | 1)


def build_integral_image(luminance: np.ndarray) -> np.ndarray:
    """Summed-area table: integral[y, x] = sum(luminance[0..=y, 0..=x]).

    Integer input accumulates in int64, anything else in float64.
    """
    if np.issubdtype(luminance.dtype, np.integer):
        dtype = np.int64
    else:
        dtype = np.float64
    return np.cumsum(np.cumsum(luminance, axis=0, dtype=dtype), axis=1, dtype=dtype)


def integral_sum(
    integral: np.ndarray,
    x1: IntOrArray,
    y1: IntOrArray,
    x2: IntOrArray,
    y2: IntOrArray,
) -> np.ndarray:
    """Sum over the inclusive rectangle [x1..x2] x [y1..y2] in O(1).

    Bounds may be scalars or broadcastable integer arrays.
    """
    x1 = np.asarray(x1)
    y1 = np.asarray(y1)
    x2 = np.asarray(x2)
    y2 = np.asarray(y2)

    # Out-of-range lookups are clamped to index 0 and zeroed by their mask.
    has_row = y1 > 0
    has_col = x1 > 0
    above = np.maximum(y1 - 1, 0)
    left = np.maximum(x1 - 1, 0)

    return (
        integral[y2, x2]
        - integral[above, x2] * has_row
        - integral[y2, left] * has_col
        + integral[above, left] * (has_row & has_col)
    )


def _luminance_milli(pixels: np.ndarray) -> np.ndarray:
    # 255 * 1000 fits comfortably in int32.
    r_w, g_w, b_w = _LUMA_WEIGHTS_MILLI
    luminance = pixels[:, :, 0].astype(np.int32) * r_w
    luminance += pixels[:, :, 1].astype(np.int32) * g_w
    luminance += pixels[:, :, 2].astype(np.int32) * b_w
    return luminance


def _to_binary_rgba(white: np.ndarray) -> np.ndarray:
    output = np.empty(white.shape + (4,), dtype=np.uint8)
    value = white.astype(np.uint8) * np.uint8(255)
    output[:, :, 0] = value
    output[:, :, 1] = value
    output[:, :, 2] = value
    output[:, :, 3] = 255
    return output


def apply_adaptive_threshold(
    pixels: np.ndarray,
    block_size: int = DEFAULT_BLOCK_SIZE,
    offset: float = DEFAULT_OFFSET,
) -> np.ndarray:
    """Binarize an RGBA buffer against local neighbourhood means.

    A pixel becomes white when its luminance exceeds
    ``local_mean * (1 - offset / 100)``, otherwise black. The neighbourhood is
    clipped at the image edges. Alpha is forced opaque.

    Args:
        pixels: Pixel buffer, uint8, shape (H, W, 4).
        block_size: Neighbourhood size; made odd and at least 3.
        offset: Darkness bias in percent.

    Returns:
        New binary buffer, uint8 RGBA, same shape.
    """
    height, width = pixels.shape[:2]
    block = normalize_block_size(block_size)
    half = block // 2

    luminance = _luminance_milli(pixels)
    integral = build_integral_image(luminance)

    cols = np.arange(width)
    x1 = np.maximum(0, cols - half)[np.newaxis, :]
    x2 = np.minimum(width - 1, cols + half)[np.newaxis, :]
    col_count = x2 - x1 + 1

    if float(offset).is_integer():
        scale = 100 - int(offset)
    else:
        scale = 100.0 - float(offset)

    white = np.empty((height, width), dtype=bool)
    for band_start in range(0, height, _ROWS_PER_BAND):
        band_end = min(height, band_start + _ROWS_PER_BAND)
        rows = np.arange(band_start, band_end)
        y1 = np.maximum(0, rows - half)[:, np.newaxis]
        y2 = np.minimum(height - 1, rows + half)[:, np.newaxis]

        count = col_count * (y2 - y1 + 1)
        local_sum = integral_sum(integral, x1, y1, x2, y2)

        # lum > (sum / count) * (1 - offset / 100), rearranged to avoid division.
        white[band_start:band_end] = (
            luminance[band_start:band_end] * count * 100 > local_sum * scale
        )

    logger.debug(
        f"Adaptive threshold: block={block}, offset={offset}, "
        f"white_ratio={white.mean():.3f}"
    )
    return _to_binary_rgba(white)


def apply_global_threshold(
    pixels: np.ndarray,
    threshold: float = DEFAULT_GLOBAL_THRESHOLD,
) -> np.ndarray:
    """Binarize against a single fixed luminance cutoff. Alpha is forced opaque."""
    white = to_luminance(pixels) > threshold
    logger.debug(f"Global threshold: cutoff={threshold}, white_ratio={white.mean():.3f}")
    return _to_binary_rgba(white)
