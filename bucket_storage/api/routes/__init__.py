"""API route modules, one per area."""

from . import buckets, files, health

__all__ = ["buckets", "files", "health"]
