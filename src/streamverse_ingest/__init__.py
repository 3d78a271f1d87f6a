"""Chunked video import service for block-based object storage."""

__version__ = "0.1.0"

__all__ = ["__version__"]
