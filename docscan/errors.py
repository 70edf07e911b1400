"""Exceptions raised by the scanning pipeline.

Input errors (``MissingDimensionsError``, ``ImageDecodeError``) propagate to the
caller. Geometric errors (``DetectionFailedError``, ``SingularTransformError``)
are recovered inside the pipeline and only show up in logs and in
``ScanResult.fallbacks``.
"""


class ScanError(Exception):
    """Base class for scanner errors."""


class MissingDimensionsError(ScanError):
    """Pixel data came without usable width/height."""


class ImageDecodeError(ScanError):
    """An image container could not be decoded into pixels."""


class DetectionFailedError(ScanError):
    """Too few boundary points to derive a document outline."""


class SingularTransformError(ScanError):
    """The homography system has no stable solution."""
