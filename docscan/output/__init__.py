"""Output encoding."""

from docscan.output.encoder import encode_image, save_image

__all__ = ["encode_image", "save_image"]
