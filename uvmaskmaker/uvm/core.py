"""Core exceptions for uvmaskmaker."""

from __future__ import annotations

__all__ = [
    "UVMaskError",
    "InvalidMeshState",
    "MissingUvChannel",
    "MeshLoadError",
    "MeshWriteError",
    "ImageIOError",
]


class UVMaskError(Exception):
    """Base exception for uvmaskmaker errors."""


class InvalidMeshState(UVMaskError):
    """Raised when a mesh cannot be read or its index data is inconsistent."""


class MissingUvChannel(UVMaskError):
    """Raised when the requested UV channel carries no coordinates."""


class MeshLoadError(UVMaskError):
    """Raised when a mesh file cannot be loaded."""


class MeshWriteError(UVMaskError):
    """Raised when a mesh with baked colours cannot be written."""


class ImageIOError(UVMaskError):
    """Raised when image input/output fails."""
