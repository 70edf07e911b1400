"""Projective transform estimation from four point correspondences.

The homography is solved with the Direct Linear Transform: each
correspondence contributes two rows to an 8x9 system, h8 is fixed to 1, and
the remaining 8x8 system is solved by Gaussian elimination with partial
pivoting.
"""

import logging
import math
from typing import Tuple, Union

import numpy as np

from docscan.errors import SingularTransformError

logger = logging.getLogger(__name__)

# Pivots smaller than this mark the system as singular.
PIVOT_TOLERANCE = 1e-10

# Flattened pages are never narrower or shorter than this.
MIN_OUTPUT_DIMENSION = 100

ArrayOrFloat = Union[np.ndarray, float]


def gaussian_elimination(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve a square linear system with partial pivoting.

    For each column the row with the largest absolute value in that column
    (first one on ties) is swapped into the pivot position.

    Args:
        a: Coefficient matrix, shape (n, n).
        b: Right-hand side, shape (n,).

    Returns:
        Solution vector, shape (n,).

    Raises:
        SingularTransformError: If a pivot's magnitude is below PIVOT_TOLERANCE.
    """
    n = len(a)
    augmented = np.hstack([
        np.asarray(a, dtype=np.float64),
        np.asarray(b, dtype=np.float64).reshape(n, 1),
    ])

    for col in range(n):
        max_row = col + int(np.argmax(np.abs(augmented[col:, col])))
        if max_row != col:
            augmented[[col, max_row]] = augmented[[max_row, col]]

        pivot = augmented[col, col]
        if abs(pivot) < PIVOT_TOLERANCE:
            raise SingularTransformError(
                f"Pivot {pivot:.3e} in column {col} is below tolerance {PIVOT_TOLERANCE}"
            )

        for row in range(col + 1, n):
            factor = augmented[row, col] / pivot
            augmented[row, col:] -= factor * augmented[col, col:]

    x = np.zeros(n, dtype=np.float64)
    for i in range(n - 1, -1, -1):
        total = augmented[i, n] - np.dot(augmented[i, i + 1:n], x[i + 1:n])
        x[i] = total / augmented[i, i]

    return x


def compute_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Compute the homography mapping four src points onto four dst points.

    Args:
        src: Source points, shape (4, 2).
        dst: Destination points, shape (4, 2), in matching order.

    Returns:
        Homography as 9 floats [h0..h8] with h8 == 1.

    Raises:
        SingularTransformError: If the correspondences are degenerate.
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    if src.shape != (4, 2) or dst.shape != (4, 2):
        raise ValueError(f"Expected two (4, 2) point sets, got {src.shape} and {dst.shape}")

    system = np.zeros((8, 9), dtype=np.float64)
    for i in range(4):
        sx, sy = src[i]
        dx, dy = dst[i]
        system[2 * i] = [-sx, -sy, -1, 0, 0, 0, dx * sx, dx * sy, dx]
        system[2 * i + 1] = [0, 0, 0, -sx, -sy, -1, dy * sx, dy * sy, dy]

    solution = gaussian_elimination(system[:, :8], -system[:, 8])
    return np.append(solution, 1.0)


def apply_homography(
    h: np.ndarray,
    x: ArrayOrFloat,
    y: ArrayOrFloat,
) -> Tuple[ArrayOrFloat, ArrayOrFloat]:
    """Map (x, y) through the homography. Works on scalars or arrays."""
    w = h[6] * x + h[7] * y + h[8]
    return (h[0] * x + h[1] * y + h[2]) / w, (h[3] * x + h[4] * y + h[5]) / w


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_output_dimensions(corners: np.ndarray) -> Tuple[int, int]:
    """Compute the flattened page size from ordered corners.

    Width is the average of the top and bottom edge lengths, height the
    average of the left and right edge lengths, each rounded and floored at
    MIN_OUTPUT_DIMENSION.

    Args:
        corners: Ordered corner points (4, 2) as [TL, TR, BR, BL].

    Returns:
        (width, height) in pixels.
    """
    tl, tr, br, bl = np.asarray(corners, dtype=np.float64)

    width_top = np.linalg.norm(tr - tl)
    width_bottom = np.linalg.norm(br - bl)
    width = _round_half_up((width_top + width_bottom) / 2)

    height_left = np.linalg.norm(bl - tl)
    height_right = np.linalg.norm(br - tr)
    height = _round_half_up((height_left + height_right) / 2)

    return max(MIN_OUTPUT_DIMENSION, width), max(MIN_OUTPUT_DIMENSION, height)
