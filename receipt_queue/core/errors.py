"""
Exception taxonomy shared by the queue engine, adapters and web layer.
"""

from __future__ import annotations


class QueueError(Exception):
    """Base class for Receipt Queue errors."""


class JobValidationError(QueueError, ValueError):
    """Rejected input (bad printer id, empty payload). Raised before any store access."""


class StoreError(QueueError):
    """The store transaction could not commit. Nothing was applied; the caller may retry."""


class ProtocolParseError(QueueError):
    """A printer sent a result document that could not be parsed."""


class RasterError(QueueError, ValueError):
    """Image data could not be decoded into a raster."""


__all__ = ["JobValidationError", "ProtocolParseError", "QueueError", "RasterError", "StoreError"]
