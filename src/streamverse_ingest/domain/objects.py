"""Stored object metadata."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class ObjectInfo:
    """Metadata of a committed object."""

    name: str
    size: int
    content_type: str | None = None


__all__ = ["ObjectInfo"]
