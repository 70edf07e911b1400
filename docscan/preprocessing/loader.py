"""Decode image containers into RGBA pixel buffers.

Supports JPEG, PNG, WebP, TIFF, HEIC/HEIF and DNG/RAW. Every loader returns a
uint8 array of shape (H, W, 4) together with an ``ImageMetadata`` record.
"""

import io
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from PIL import ExifTags, Image, UnidentifiedImageError

from docscan.errors import ImageDecodeError, MissingDimensionsError

logger = logging.getLogger(__name__)

_HEIC_EXTENSIONS = ('.heic', '.heif')
_RAW_EXTENSIONS = ('.dng', '.cr2', '.nef', '.arw')
_STANDARD_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp', '.tiff', '.tif', '.bmp')

_heif_registered = False


class ImageMetadata:
    """Metadata extracted from a decoded image."""

    def __init__(
        self,
        original_size: Tuple[int, int],
        format: str,
        bit_depth: int,
        orientation: int = 1
    ) -> None:
        self.original_size = original_size  # (width, height)
        self.format = format
        self.bit_depth = bit_depth
        self.orientation = orientation


def as_pixel_buffer(
    data: Union[bytes, bytearray, memoryview, np.ndarray],
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> np.ndarray:
    """Wrap raw RGBA8 data as a (height, width, 4) uint8 array.

    Accepts either a flat row-major buffer (stride width * 4) with explicit
    dimensions, or an array that already has shape (H, W, 4) or (H, W, 3).

    Raises:
        MissingDimensionsError: If dimensions are absent, non-positive, or do
            not match the amount of data.
        ValueError: If an array is not uint8 or has an unsupported channel count.
    """
    if isinstance(data, np.ndarray) and data.dtype != np.uint8:
        raise ValueError(
            f"Pixel arrays must be uint8, got {data.dtype}; convert to 8 bits per channel first"
        )

    if isinstance(data, np.ndarray) and data.ndim == 3:
        h, w, channels = data.shape
        if h <= 0 or w <= 0:
            raise MissingDimensionsError(f"Pixel array has empty dimensions: {data.shape}")
        if channels == 4:
            return np.ascontiguousarray(data)
        if channels == 3:
            alpha = np.full((h, w, 1), 255, dtype=np.uint8)
            return np.concatenate([data, alpha], axis=2)
        raise ValueError(f"Unsupported number of channels: {channels}")

    if not width or not height or width <= 0 or height <= 0:
        raise MissingDimensionsError(
            f"Raw pixel data requires positive width and height, got {width}x{height}"
        )

    if isinstance(data, np.ndarray):
        flat = data.ravel()
    else:
        flat = np.frombuffer(bytes(data), dtype=np.uint8)
    expected = width * height * 4
    if flat.size != expected:
        raise MissingDimensionsError(
            f"Raw pixel data has {flat.size} bytes, expected {expected} for {width}x{height} RGBA"
        )
    return flat.reshape(height, width, 4).copy()


def _apply_exif_orientation(img: Image.Image) -> Tuple[Image.Image, int]:
    """Apply EXIF orientation to a PIL Image."""
    orientation = 1
    try:
        exif = img._getexif()
        if exif is None:
            return img, orientation

        orientation_key = None
        for tag, name in ExifTags.TAGS.items():
            if name == 'Orientation':
                orientation_key = tag
                break

        if orientation_key is None:
            return img, orientation

        orientation = exif.get(orientation_key) or 1

        if orientation == 2:
            img = img.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        elif orientation == 3:
            img = img.rotate(180, expand=True)
        elif orientation == 4:
            img = img.rotate(180, expand=True).transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        elif orientation == 5:
            img = img.rotate(-90, expand=True).transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        elif orientation == 6:
            img = img.rotate(-90, expand=True)
        elif orientation == 7:
            img = img.rotate(90, expand=True).transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        elif orientation == 8:
            img = img.rotate(90, expand=True)

        logger.debug(f"Applied EXIF orientation: {orientation}")

    except (AttributeError, KeyError, IndexError) as e:
        logger.debug(f"Could not read EXIF orientation: {e}")

    return img, orientation


def _pil_to_buffer(img: Image.Image, format_name: str) -> Tuple[np.ndarray, ImageMetadata]:
    original_size = img.size  # (width, height)
    if original_size[0] <= 0 or original_size[1] <= 0:
        raise MissingDimensionsError(f"Decoded {format_name} image has no dimensions")

    img, orientation = _apply_exif_orientation(img)
    pixels = np.array(img.convert('RGBA'), dtype=np.uint8)

    metadata = ImageMetadata(
        original_size=original_size,
        format=format_name,
        bit_depth=8,
        orientation=orientation,
    )
    return pixels, metadata


def _register_heif() -> None:
    global _heif_registered
    if _heif_registered:
        return
    try:
        from pillow_heif import register_heif_opener
    except ImportError as e:
        raise ImportError(
            "pillow-heif is required for HEIC support. "
            "Install with: pip install pillow-heif"
        ) from e
    register_heif_opener()
    _heif_registered = True


def load_heic(path: str) -> Tuple[np.ndarray, ImageMetadata]:
    """Load a HEIC/HEIF image using pillow-heif."""
    _register_heif()
    with Image.open(path) as img:
        pixels, metadata = _pil_to_buffer(img, "HEIC")

    logger.info(f"Loaded HEIC: {path} ({pixels.shape[1]}x{pixels.shape[0]})")
    return pixels, metadata


def load_dng(path: str) -> Tuple[np.ndarray, ImageMetadata]:
    """Load a DNG/RAW image using rawpy, demosaiced to 8-bit sRGB."""
    try:
        import rawpy
    except ImportError as e:
        raise ImportError(
            "rawpy is required for DNG/RAW support. "
            "Install with: pip install rawpy"
        ) from e

    with rawpy.imread(path) as raw:
        original_size = (raw.sizes.width, raw.sizes.height)
        rgb = raw.postprocess(
            use_camera_wb=True,
            output_color=rawpy.ColorSpace.sRGB,
            output_bps=8,
            no_auto_bright=False,
        )

    pixels = as_pixel_buffer(rgb)
    metadata = ImageMetadata(
        original_size=original_size,
        format="DNG",
        bit_depth=16
    )

    logger.info(f"Loaded DNG: {path} ({pixels.shape[1]}x{pixels.shape[0]})")
    return pixels, metadata


def load_standard(path: str) -> Tuple[np.ndarray, ImageMetadata]:
    """Load JPEG, PNG, WebP, TIFF or BMP using PIL."""
    format_name = Path(path).suffix.lower().lstrip('.').upper()
    try:
        with Image.open(path) as img:
            pixels, metadata = _pil_to_buffer(img, format_name)
    except UnidentifiedImageError as e:
        raise ImageDecodeError(f"Cannot decode {path}: {e}") from e

    logger.info(f"Loaded {format_name}: {path} ({pixels.shape[1]}x{pixels.shape[0]})")
    return pixels, metadata


def load_image(path: str) -> Tuple[np.ndarray, ImageMetadata]:
    """Load an image file from any supported format.

    Args:
        path: Path to image file

    Returns:
        Tuple of (RGBA uint8 array with shape (H, W, 4), metadata)

    Raises:
        ValueError: If file format is not supported
        FileNotFoundError: If file does not exist
        ImageDecodeError: If the file content cannot be decoded
    """
    path_obj = Path(path)

    if not path_obj.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    ext = path_obj.suffix.lower()

    if ext in _HEIC_EXTENSIONS:
        return load_heic(str(path))
    elif ext in _RAW_EXTENSIONS:
        return load_dng(str(path))
    elif ext in _STANDARD_EXTENSIONS:
        return load_standard(str(path))
    else:
        raise ValueError(f"Unsupported image format: {ext}")


def load_image_bytes(data: bytes) -> Tuple[np.ndarray, ImageMetadata]:
    """Decode an in-memory image container (any format Pillow can open).

    HEIC is recognised when pillow-heif is installed.

    Raises:
        ImageDecodeError: If the bytes are not a decodable image.
    """
    try:
        _register_heif()
    except ImportError:
        logger.debug("pillow-heif not available, HEIC bytes will not decode")

    try:
        with Image.open(io.BytesIO(data)) as img:
            format_name = (img.format or "UNKNOWN").upper()
            pixels, metadata = _pil_to_buffer(img, format_name)
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Cannot decode image data ({len(data)} bytes): {e}") from e

    logger.info(f"Decoded {metadata.format} from memory ({pixels.shape[1]}x{pixels.shape[0]})")
    return pixels, metadata
