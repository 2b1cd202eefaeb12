"""Exception hierarchy shared by the decoder, the fetch layer and the controller."""

from __future__ import annotations


class LotusViewerError(Exception):
    """Base class for all viewer errors."""


class DecodeError(LotusViewerError):
    """Raised when a byte stream cannot be turned into a :class:`Volume`."""


class NotCompressedFormatRecognized(DecodeError):
    """The stream looks compressed but could not be decompressed."""


class NotValidContainer(DecodeError):
    """The stream is not a NIfTI-1 container (or its image data is truncated)."""


class MissingDimensions(DecodeError):
    """The header declares a zero or negative spatial extent."""


class NetworkError(LotusViewerError):
    """Retrieval of volume bytes failed."""


__all__ = [
    "LotusViewerError",
    "DecodeError",
    "NotCompressedFormatRecognized",
    "NotValidContainer",
    "MissingDimensions",
    "NetworkError",
]
