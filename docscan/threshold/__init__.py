"""Page binarization."""

from docscan.threshold.adaptive import (
    apply_adaptive_threshold,
    apply_global_threshold,
    build_integral_image,
    integral_sum,
    normalize_block_size,
)

__all__ = [
    "apply_adaptive_threshold",
    "apply_global_threshold",
    "build_integral_image",
    "integral_sum",
    "normalize_block_size",
]
