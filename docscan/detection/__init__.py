"""Document boundary detection: edges, outline polygon and corner selection."""

from docscan.detection.corners import (
    CornerDetection,
    default_corners,
    detect_corners,
    draw_corner_detection,
    order_corners,
)
from docscan.detection.edges import compute_edge_map

__all__ = [
    "CornerDetection",
    "compute_edge_map",
    "default_corners",
    "detect_corners",
    "draw_corner_detection",
    "order_corners",
]
