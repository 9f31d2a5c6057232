"""
Object storage integration for buckets and files.

Supports Amazon S3 and S3-compatible services via boto3.
Includes mock mode for local development without credentials.
"""

from .client import (
    BUCKET_CORS_RULE,
    InMemoryObjectStore,
    MockStorageClient,
    S3StorageClient,
    StorageClient,
    StorageConfig,
    create_storage_client,
)

__all__ = [
    "BUCKET_CORS_RULE",
    "InMemoryObjectStore",
    "MockStorageClient",
    "S3StorageClient",
    "StorageClient",
    "StorageConfig",
    "create_storage_client",
]
