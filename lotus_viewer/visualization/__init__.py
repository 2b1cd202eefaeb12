"""Visualization subpackage for the Lotus viewer."""

from .slice_view import SliceView, rgba_to_qimage

__all__ = ["SliceView", "rgba_to_qimage"]
