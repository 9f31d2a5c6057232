"""
Domain models for object storage operations.

These are point-in-time snapshots returned by storage calls. They have
no dependencies on FastAPI, boto3 or the wire format; the API layer
decides how they are serialized.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class FileInfo:
    """
    An object stored in a bucket.

    Frozen because it describes the object at the moment it was listed
    or uploaded; nothing tracks it afterwards.
    """
    key: str
    etag: str
    last_modified: Optional[datetime]
    size: int

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError("File size cannot be negative")


@dataclass(frozen=True)
class BucketInfo:
    """State of a bucket as reported by head/create/ensure."""
    name: str
    location: str
    exists: bool
    created: bool = False
    creation_date: Optional[datetime] = None
