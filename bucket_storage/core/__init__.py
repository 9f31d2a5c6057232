"""
Core storage logic.

This module is framework-agnostic - it doesn't import FastAPI or boto3.
The bucket provisioning flow only needs something that implements the
bucket operations, so it can be tested against the in-memory client.
"""

from .buckets import BucketOperations, BucketProvisioner
from .errors import StorageConfigurationError, StorageError, StorageNotFoundError
from .models import BucketInfo, FileInfo

__all__ = [
    "BucketInfo",
    "BucketOperations",
    "BucketProvisioner",
    "FileInfo",
    "StorageConfigurationError",
    "StorageError",
    "StorageNotFoundError",
]
