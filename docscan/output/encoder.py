"""Encode pixel buffers into PNG or JPEG containers."""

import io
import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("png", "jpeg")

_PNG_COMPRESSION_LEVEL = 6


def normalize_format(output_format: str) -> str:
    """Map user-facing format names onto "png" or "jpeg"."""
    fmt = output_format.lower()
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(
            f"Unsupported output format: {output_format!r}. Use 'png' or 'jpeg'."
        )
    return fmt


def encode_image(
    pixels: np.ndarray,
    output_format: str = "png",
    quality: int = 90,
) -> bytes:
    """Serialize an RGBA buffer.

    PNG keeps the alpha channel; JPEG drops it and uses ``quality``.

    Args:
        pixels: Pixel buffer, uint8, shape (H, W, 4).
        output_format: "png" or "jpeg".
        quality: JPEG quality (1-100). Ignored for PNG.

    Returns:
        Encoded image bytes.
    """
    fmt = normalize_format(output_format)
    img = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    buffer = io.BytesIO()

    if fmt == "jpeg":
        img.convert("RGB").save(buffer, format="JPEG", quality=int(quality))
    else:
        img.save(buffer, format="PNG", compress_level=_PNG_COMPRESSION_LEVEL)

    data = buffer.getvalue()
    logger.debug(f"Encoded {pixels.shape[1]}x{pixels.shape[0]} as {fmt} ({len(data)} bytes)")
    return data


def save_image(
    pixels: np.ndarray,
    output_path: Union[str, Path],
    output_format: str = "png",
    quality: int = 90,
) -> Path:
    """Encode and write an RGBA buffer, creating parent directories.

    The file suffix is forced to match the output format.
    """
    fmt = normalize_format(output_format)
    output_path = Path(output_path)
    suffix = ".jpg" if fmt == "jpeg" else ".png"
    if output_path.suffix.lower() not in ((".jpg", ".jpeg") if fmt == "jpeg" else (".png",)):
        output_path = output_path.with_suffix(suffix)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(encode_image(pixels, fmt, quality))
    return output_path
