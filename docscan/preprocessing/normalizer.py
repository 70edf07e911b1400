"""Proportional downscaling to keep pixel work bounded."""

import logging
from typing import Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Longest edge allowed before geometric processing starts.
MAX_PROCESSING_SIZE = 4096


class NormalizationResult:
    """Result of a downscale step."""

    def __init__(
        self,
        image: np.ndarray,
        scale_factor: float
    ) -> None:
        self.image = image
        self.scale_factor = scale_factor


def fit_within(width: int, height: int, max_size: int) -> Tuple[int, int]:
    """Return (width, height) scaled so the longest edge is at most max_size.

    Dimensions are floored and never drop below 1. Images already within the
    limit are returned unchanged.
    """
    if width <= max_size and height <= max_size:
        return width, height
    longest = max(width, height)
    return max(1, width * max_size // longest), max(1, height * max_size // longest)


def downscale(
    image: np.ndarray,
    max_size: int = MAX_PROCESSING_SIZE,
    interpolation: int = cv2.INTER_AREA,
) -> NormalizationResult:
    """Shrink an image proportionally so its longest edge is at most max_size.

    Args:
        image: Pixel buffer, uint8, shape (H, W, C).
        max_size: Maximum dimension (width or height).
        interpolation: OpenCV interpolation flag.

    Returns:
        NormalizationResult with the (possibly) resized image and scale factor.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    height, width = image.shape[:2]
    new_width, new_height = fit_within(width, height, max_size)

    if (new_width, new_height) == (width, height):
        logger.debug(f"Image {width}x{height} within {max_size}px, no resize needed")
        return NormalizationResult(image=image, scale_factor=1.0)

    resized = cv2.resize(image, (new_width, new_height), interpolation=interpolation)
    scale_factor = new_width / width

    logger.info(
        f"Resized image from {width}x{height} to {new_width}x{new_height} "
        f"(scale: {scale_factor:.3f})"
    )
    return NormalizationResult(image=resized, scale_factor=scale_factor)
