"""Reduce the document outline to four ordered corners.

The outline polygon comes from ``docscan.detection.contour``. When it is
ambiguous (too few points, or the greedy corner match does not produce four
distinct points) the detector falls back to a rectangle inset from the image
edges. Detection never raises for geometric reasons; the fallback and its
reason are recorded on the returned ``CornerDetection``.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import cv2
import numpy as np

from docscan.detection.contour import extract_hull_polygon
from docscan.detection.edges import DEFAULT_BLUR_SIGMA, compute_edge_map
from docscan.errors import DetectionFailedError

logger = logging.getLogger(__name__)

# Fallback rectangle inset, as a fraction of min(width, height).
FALLBACK_INSET_RATIO = 0.05


@dataclass
class CornerDetection:
    """Result of document corner detection."""

    corners: np.ndarray  # shape (4, 2) as [TL, TR, BR, BL], (x, y)
    is_fallback: bool    # True if the default inset rectangle was used
    method_used: str = field(default="hull")
    failure_reason: Optional[str] = field(default=None)
    num_candidates: int = field(default=0)  # simplified hull size


def default_corners(width: int, height: int) -> np.ndarray:
    """Rectangle inset by 5% of the smaller dimension, ordered TL, TR, BR, BL."""
    margin = int(math.floor(min(width, height) * FALLBACK_INSET_RATIO))
    return np.array([
        [margin, margin],
        [width - margin, margin],
        [width - margin, height - margin],
        [margin, height - margin],
    ], dtype=np.float32)


def order_corners(points: Sequence[Sequence[float]]) -> np.ndarray:
    """Order four points as top-left, top-right, bottom-right, bottom-left.

    Points are sorted by y into a top pair and a bottom pair, then each pair
    is sorted by x. Both sorts are stable.

    Args:
        points: Four (x, y) points.

    Returns:
        Ordered array of shape (4, 2), float32.
    """
    pts = [(float(p[0]), float(p[1])) for p in points]
    if len(pts) != 4:
        raise ValueError(f"Expected 4 points, got {len(pts)}")

    by_y = sorted(pts, key=lambda p: p[1])
    top = sorted(by_y[:2], key=lambda p: p[0])
    bottom = sorted(by_y[2:], key=lambda p: p[0])

    return np.array([top[0], top[1], bottom[1], bottom[0]], dtype=np.float32)


def select_corners(
    candidates: np.ndarray,
    width: int,
    height: int,
) -> Optional[np.ndarray]:
    """Pick four corner points from the simplified hull.

    With exactly four candidates they are used as-is. With more, each image
    corner (0,0), (W,0), (W,H), (0,H) greedily claims the nearest unused
    candidate.

    Args:
        candidates: Hull vertices, shape (N, 2).
        width: Image width.
        height: Image height.

    Returns:
        Four unordered points, shape (4, 2), or None if no valid choice exists.
    """
    candidates = np.asarray(candidates, dtype=np.float64)
    if len(candidates) < 4:
        return None
    if len(candidates) == 4:
        return candidates.copy()

    image_corners = [(0.0, 0.0), (width, 0.0), (width, height), (0.0, height)]
    selected: List[tuple] = []

    for cx, cy in image_corners:
        best = None
        best_dist = math.inf
        for x, y in candidates:
            point = (float(x), float(y))
            if point in selected:
                continue
            dist = math.hypot(point[0] - cx, point[1] - cy)
            if dist < best_dist:
                best_dist = dist
                best = point
        if best is not None:
            selected.append(best)

    if len(selected) != 4:
        return None
    return np.array(selected, dtype=np.float64)


def detect_corners(
    pixels: np.ndarray,
    sigma: float = DEFAULT_BLUR_SIGMA,
    edge_map: Optional[np.ndarray] = None,
) -> CornerDetection:
    """Detect the four corners of the document in an RGBA buffer.

    Args:
        pixels: Pixel buffer, uint8, shape (H, W, 4).
        sigma: Gaussian blur strength for the edge stage.
        edge_map: Precomputed ``compute_edge_map(pixels, sigma)``, if the
            caller already has it.

    Returns:
        CornerDetection with ordered corners. Never raises on ambiguous
        geometry; falls back to ``default_corners`` instead.
    """
    height, width = pixels.shape[:2]
    edges = compute_edge_map(pixels, sigma) if edge_map is None else edge_map

    try:
        polygon = extract_hull_polygon(edges)
    except DetectionFailedError as e:
        logger.warning(f"Corner detection failed, using default corners: {e}")
        return CornerDetection(
            corners=default_corners(width, height),
            is_fallback=True,
            method_used="default",
            failure_reason=str(e),
        )

    chosen = select_corners(polygon, width, height)
    if chosen is None:
        reason = f"Could not pick 4 distinct corners from {len(polygon)} hull points"
        logger.warning(f"{reason}, using default corners")
        return CornerDetection(
            corners=default_corners(width, height),
            is_fallback=True,
            method_used="default",
            failure_reason=reason,
            num_candidates=len(polygon),
        )

    corners = order_corners(chosen)
    logger.info(
        f"Document corners detected from {len(polygon)} hull points: "
        f"TL={tuple(corners[0])}, BR={tuple(corners[2])}"
    )

    return CornerDetection(
        corners=corners,
        is_fallback=False,
        method_used="hull",
        num_candidates=len(polygon),
    )


def draw_corner_detection(
    pixels: np.ndarray,
    detection: CornerDetection,
) -> np.ndarray:
    """Draw the detected quadrilateral on a copy of the image for debugging.

    Args:
        pixels: Pixel buffer, uint8 RGBA.
        detection: CornerDetection result.

    Returns:
        Overlay image, uint8 RGBA, same shape.
    """
    overlay = np.ascontiguousarray(pixels.copy())
    corners = np.round(detection.corners).astype(np.int32)
    color = (255, 0, 0, 255) if detection.is_fallback else (0, 255, 0, 255)
    thickness = max(2, min(pixels.shape[:2]) // 200)

    for i in range(4):
        pt1 = (int(corners[i][0]), int(corners[i][1]))
        pt2 = (int(corners[(i + 1) % 4][0]), int(corners[(i + 1) % 4][1]))
        cv2.line(overlay, pt1, pt2, color, thickness)

    for corner in corners:
        cv2.circle(overlay, (int(corner[0]), int(corner[1])), thickness * 3, (0, 0, 255, 255), -1)

    text = f"method:{detection.method_used}"
    if detection.is_fallback:
        text += " (fallback)"
    cv2.putText(overlay, text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2)

    return overlay
