"""Luminance, Gaussian smoothing and Sobel gradient magnitude.

These are the first three steps of document detection. All functions are pure
and operate on whole arrays; there is no cross-pixel write dependency, so each
pass is expressed as a sum of shifted slices.
"""

import logging
import math

import numpy as np

logger = logging.getLogger(__name__)

# Perceptual luminance weights for R, G, B.
LUMA_WEIGHTS = (0.299, 0.587, 0.114)

# Default blur strength for edge detection. Empirically tuned.
DEFAULT_BLUR_SIGMA = 2.0

_SOBEL_X = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64)
_SOBEL_Y = np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.float64)


def to_luminance(pixels: np.ndarray) -> np.ndarray:
    """Convert an RGBA (or RGB) uint8 buffer to a float luminance map.

    Args:
        pixels: Pixel buffer, shape (H, W, 4) or (H, W, 3).

    Returns:
        Luminance as float64, shape (H, W), range [0, 255].
    """
    rgb = pixels[:, :, :3].astype(np.float64)
    r_w, g_w, b_w = LUMA_WEIGHTS
    return r_w * rgb[:, :, 0] + g_w * rgb[:, :, 1] + b_w * rgb[:, :, 2]


def gaussian_kernel(sigma: float) -> np.ndarray:
    """Build a normalized 1-D Gaussian kernel of size ceil(3 sigma) * 2 + 1."""
    size = int(math.ceil(sigma * 3)) * 2 + 1
    half = size // 2
    x = np.arange(-half, half + 1, dtype=np.float64)
    kernel = np.exp(-(x * x) / (2 * sigma * sigma))
    return kernel / kernel.sum()


def _convolve_clamped(data: np.ndarray, kernel: np.ndarray, axis: int) -> np.ndarray:
    half = len(kernel) // 2
    pad = [(0, 0), (0, 0)]
    pad[axis] = (half, half)
    # Edge padding repeats the border sample, i.e. clamps coordinates.
    padded = np.pad(data, pad, mode="edge")

    length = data.shape[axis]
    out = np.zeros_like(data, dtype=np.float64)
    for i, weight in enumerate(kernel):
        if axis == 1:
            out += weight * padded[:, i:i + length]
        else:
            out += weight * padded[i:i + length, :]
    return out


def gaussian_blur(luminance: np.ndarray, sigma: float = DEFAULT_BLUR_SIGMA) -> np.ndarray:
    """Separable Gaussian blur, horizontal pass then vertical pass.

    Sample coordinates outside the image are clamped to the nearest border
    pixel (no reflection).

    Args:
        luminance: Float map, shape (H, W).
        sigma: Blur strength.

    Returns:
        Blurred map, float64, same shape.
    """
    kernel = gaussian_kernel(sigma)
    horizontal = _convolve_clamped(luminance.astype(np.float64), kernel, axis=1)
    return _convolve_clamped(horizontal, kernel, axis=0)


def sobel_magnitude(luminance: np.ndarray) -> np.ndarray:
    """Gradient magnitude sqrt(gx^2 + gy^2) from 3x3 Sobel kernels.

    Border pixels are left at 0.

    Args:
        luminance: Float map, shape (H, W).

    Returns:
        Edge map, float64, same shape.
    """
    height, width = luminance.shape
    magnitude = np.zeros((height, width), dtype=np.float64)
    if height < 3 or width < 3:
        return magnitude

    gx = np.zeros((height - 2, width - 2), dtype=np.float64)
    gy = np.zeros_like(gx)
    for ky in range(3):
        for kx in range(3):
            window = luminance[ky:ky + height - 2, kx:kx + width - 2]
            if _SOBEL_X[ky, kx]:
                gx += _SOBEL_X[ky, kx] * window
            if _SOBEL_Y[ky, kx]:
                gy += _SOBEL_Y[ky, kx] * window

    magnitude[1:-1, 1:-1] = np.sqrt(gx * gx + gy * gy)
    return magnitude


def compute_edge_map(pixels: np.ndarray, sigma: float = DEFAULT_BLUR_SIGMA) -> np.ndarray:
    """Luminance -> Gaussian blur -> Sobel magnitude."""
    luminance = to_luminance(pixels)
    blurred = gaussian_blur(luminance, sigma)
    edges = sobel_magnitude(blurred)
    logger.debug(
        f"Edge map: {edges.shape[1]}x{edges.shape[0]}, "
        f"max={edges.max():.1f}, mean={edges.mean():.2f}"
    )
    return edges
