"""Debug visualization output for pipeline steps."""

import logging
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def to_displayable(image: np.ndarray) -> np.ndarray:
    """Convert a pixel buffer or a float map into a uint8 image.

    Float maps (luminance, edge magnitudes) are rescaled to [0, 255] by their
    maximum.
    """
    if image.dtype == np.uint8:
        return image

    data = image.astype(np.float64)
    peak = data.max() if data.size else 0.0
    if peak > 0:
        data = data * (255.0 / peak)
    return np.clip(data, 0, 255).astype(np.uint8)


def save_debug_image(
    image: np.ndarray,
    output_path: Union[str, Path],
    description: Optional[str] = None,
    quality: int = 95
) -> None:
    """Save debug image with step numbering, always as JPEG for easy viewing.

    Args:
        image: RGBA/RGB uint8 buffer, or a 2-D float map
        output_path: Path to save debug image (should include step number prefix)
        description: Optional description to log
        quality: JPEG quality (0-100)
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    img_uint8 = to_displayable(image)

    if img_uint8.ndim == 2:
        img_bgr = cv2.cvtColor(img_uint8, cv2.COLOR_GRAY2BGR)
    elif img_uint8.shape[2] == 3:
        img_bgr = cv2.cvtColor(img_uint8, cv2.COLOR_RGB2BGR)
    elif img_uint8.shape[2] == 4:
        img_bgr = cv2.cvtColor(img_uint8, cv2.COLOR_RGBA2BGR)
    else:
        raise ValueError(f"Unsupported number of channels: {img_uint8.shape[2]}")

    if output_path.suffix.lower() not in ['.jpg', '.jpeg']:
        output_path = output_path.with_suffix('.jpg')

    cv2.imwrite(
        str(output_path),
        img_bgr,
        [cv2.IMWRITE_JPEG_QUALITY, quality]
    )

    if description:
        logger.debug(f"Saved debug image: {output_path} - {description}")
    else:
        logger.debug(f"Saved debug image: {output_path}")
