"""Homography estimation and perspective resampling."""

from docscan.geometry.homography import (
    apply_homography,
    compute_homography,
    compute_output_dimensions,
)
from docscan.geometry.perspective import correct_perspective, warp_perspective

__all__ = [
    "apply_homography",
    "compute_homography",
    "compute_output_dimensions",
    "correct_perspective",
    "warp_perspective",
]
