"""Image decoding and size normalization."""

from docscan.preprocessing.loader import (
    ImageMetadata,
    as_pixel_buffer,
    load_image,
    load_image_bytes,
)
from docscan.preprocessing.normalizer import downscale, fit_within

__all__ = [
    "ImageMetadata",
    "as_pixel_buffer",
    "downscale",
    "fit_within",
    "load_image",
    "load_image_bytes",
]
