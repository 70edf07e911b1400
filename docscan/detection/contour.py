"""Edge-map binarization and outline polygon extraction.

Steps:
1. Otsu's method picks a global cutoff for the gradient magnitudes.
2. Boundary points are collected on a stride-2 grid inside a small margin.
3. Graham scan builds the convex hull of those points.
4. Douglas-Peucker reduces the hull to a handful of candidate corners.
"""

import logging
import math
from typing import List, Tuple

import numpy as np

from docscan.errors import DetectionFailedError

logger = logging.getLogger(__name__)

# Border excluded from the boundary scan, as a fraction of min(width, height).
BORDER_MARGIN_RATIO = 0.02

# Douglas-Peucker tolerance as a fraction of image width.
SIMPLIFY_EPSILON_RATIO = 0.02

_SCAN_STRIDE = 2
_MIN_BOUNDARY_POINTS = 4


def otsu_threshold(edge_map: np.ndarray) -> int:
    """Select a global threshold that maximizes between-class variance.

    Magnitudes are floored and clamped into a 256-bin histogram. Ties keep the
    first (lowest) candidate. If every value falls into a single bin the result
    is 0.

    Args:
        edge_map: Gradient magnitudes, any float array.

    Returns:
        Threshold bin in [0, 255].
    """
    bins = np.clip(np.floor(edge_map), 0, 255).astype(np.int64).ravel()
    histogram = np.bincount(bins, minlength=256).astype(np.float64)
    return _otsu_from_histogram(histogram, float(bins.size))


def _otsu_from_histogram(histogram: np.ndarray, total: float) -> int:
    levels = np.arange(256, dtype=np.float64)
    total_sum = float(np.dot(levels, histogram))

    w_b = np.cumsum(histogram)
    sum_b = np.cumsum(levels * histogram)
    w_f = total - w_b

    valid = (w_b > 0) & (w_f > 0)
    variance = np.zeros(256, dtype=np.float64)
    m_b = sum_b[valid] / w_b[valid]
    m_f = (total_sum - sum_b[valid]) / w_f[valid]
    variance[valid] = w_b[valid] * w_f[valid] * (m_b - m_f) ** 2

    if variance.max() <= 0:
        return 0
    return int(np.argmax(variance))


def find_boundary_points(binary: np.ndarray) -> np.ndarray:
    """Collect "on" pixels that touch at least one "off" 8-neighbour.

    Only pixels on a stride-2 grid are considered, and a border margin of
    2% of the smaller dimension is skipped. Neighbours outside the image do
    not count as "off".

    Args:
        binary: Boolean edge mask, shape (H, W).

    Returns:
        Points as float64 array of shape (N, 2) holding (x, y), row-major order.
    """
    height, width = binary.shape
    margin = int(math.floor(min(width, height) * BORDER_MARGIN_RATIO))

    padded = np.pad(binary, 1, mode="constant", constant_values=True)
    has_off_neighbour = np.zeros_like(binary, dtype=bool)
    for dy in range(3):
        for dx in range(3):
            has_off_neighbour |= ~padded[dy:dy + height, dx:dx + width]

    boundary = binary & has_off_neighbour
    grid = boundary[margin:height - margin:_SCAN_STRIDE, margin:width - margin:_SCAN_STRIDE]
    rows, cols = np.nonzero(grid)

    points = np.empty((len(rows), 2), dtype=np.float64)
    points[:, 0] = cols * _SCAN_STRIDE + margin
    points[:, 1] = rows * _SCAN_STRIDE + margin
    return points


def _cross(o: Tuple[float, float], a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: np.ndarray) -> np.ndarray:
    """Convex hull by Graham scan.

    The pivot is the point with the lowest y (smallest x on ties). The other
    points are sorted by polar angle around it, nearer points first on equal
    angles, and the stack drops its top while the last three points do not make
    a strict left turn.

    Args:
        points: Array of shape (N, 2).

    Returns:
        Hull vertices in scan order, shape (M, 2).
    """
    points = np.asarray(points, dtype=np.float64)
    n = len(points)
    if n < 3:
        return points.copy()

    pivot_idx = int(np.lexsort((points[:, 0], points[:, 1]))[0])
    order = list(range(n))
    order[0], order[pivot_idx] = order[pivot_idx], order[0]
    rest = np.array(order[1:], dtype=np.int64)

    pivot = points[pivot_idx]
    dx = points[rest, 0] - pivot[0]
    dy = points[rest, 1] - pivot[1]
    angles = np.arctan2(dy, dx)
    distances = dx * dx + dy * dy
    sorted_rest = rest[np.lexsort((distances, angles))]

    stack: List[Tuple[float, float]] = [(float(pivot[0]), float(pivot[1]))]
    for idx in sorted_rest:
        point = (float(points[idx, 0]), float(points[idx, 1]))
        while len(stack) > 1 and _cross(stack[-2], stack[-1], point) <= 0:
            stack.pop()
        stack.append(point)

    return np.array(stack, dtype=np.float64)


def perpendicular_distance(
    points: np.ndarray,
    line_start: np.ndarray,
    line_end: np.ndarray,
) -> np.ndarray:
    """Distance from each point to the infinite line through start and end.

    A degenerate line (start == end) falls back to the distance from start.
    """
    points = np.atleast_2d(points)
    dx = line_end[0] - line_start[0]
    dy = line_end[1] - line_start[1]
    d = math.sqrt(dx * dx + dy * dy)

    if d == 0:
        return np.hypot(points[:, 0] - line_start[0], points[:, 1] - line_start[1])

    return np.abs(
        dy * points[:, 0] - dx * points[:, 1]
        + line_end[0] * line_start[1] - line_end[1] * line_start[0]
    ) / d


def douglas_peucker(points: np.ndarray, epsilon: float) -> np.ndarray:
    """Simplify a polyline, keeping points that deviate more than epsilon.

    Uses an explicit stack of index ranges instead of recursion; the kept set
    is the same as the recursive formulation produces.

    Args:
        points: Polyline vertices, shape (N, 2).
        epsilon: Distance tolerance in pixels.

    Returns:
        Subset of the input points in original order, first and last included.
    """
    points = np.asarray(points, dtype=np.float64)
    n = len(points)
    if n <= 2:
        return points.copy()

    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[n - 1] = True
    stack = [(0, n - 1)]

    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue

        distances = perpendicular_distance(points[start + 1:end], points[start], points[end])
        offset = int(np.argmax(distances))
        max_dist = float(distances[offset])

        if max_dist > epsilon:
            split = start + 1 + offset
            keep[split] = True
            stack.append((split, end))
            stack.append((start, split))

    return points[keep]


def extract_hull_polygon(edge_map: np.ndarray) -> np.ndarray:
    """Binarize an edge map and reduce its outline to a simplified hull.

    Args:
        edge_map: Gradient magnitudes, shape (H, W).

    Returns:
        Simplified hull vertices, shape (M, 2). M may be below 4.

    Raises:
        DetectionFailedError: If fewer than 4 boundary points are found.
    """
    height, width = edge_map.shape
    threshold = otsu_threshold(edge_map)
    binary = edge_map > threshold

    points = find_boundary_points(binary)
    logger.debug(f"Otsu threshold={threshold}, boundary points={len(points)}")

    if len(points) < _MIN_BOUNDARY_POINTS:
        raise DetectionFailedError(
            f"Only {len(points)} boundary points found (threshold={threshold})"
        )

    hull = convex_hull(points)
    simplified = douglas_peucker(hull, width * SIMPLIFY_EPSILON_RATIO)
    logger.debug(f"Hull vertices={len(hull)}, simplified={len(simplified)}")

    return simplified
