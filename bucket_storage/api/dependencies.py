"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be mocked for testing
- Configuration is centralized

The bucket a request works on only becomes known after the handler has
validated the x-bucket-name header, so instead of a ready-made client
we inject a factory that builds one per request for a given bucket.
"""

import logging
from typing import Annotated, Callable

from fastapi import Depends

from ..config.settings import Settings, get_settings
from ..infrastructure.storage.client import (
    InMemoryObjectStore,
    StorageClient,
    StorageConfig,
    create_storage_client,
)

logger = logging.getLogger(__name__)

StorageClientFactory = Callable[[str], StorageClient]

# Global mock store (shared across requests for testing)
_mock_object_store = None


def get_mock_object_store() -> InMemoryObjectStore:
    """Return the process-wide in-memory store used in mock mode."""
    global _mock_object_store

    if _mock_object_store is None:
        _mock_object_store = InMemoryObjectStore()
        logger.info("Created shared in-memory object store")
    return _mock_object_store


def reset_mock_object_store() -> None:
    """Drop everything held by the mock store. Used by tests."""
    global _mock_object_store
    _mock_object_store = None


def get_storage_factory(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageClientFactory:
    """
    Provide a factory that builds a storage client for one bucket.

    In mock mode every client reads and writes the shared in-memory
    store, so uploaded files persist during the testing session.
    Otherwise each call builds a fresh boto3 client; credentials are
    validated when the client is built and raise
    StorageConfigurationError if missing.
    """
    if settings.storage_mock_mode:
        store = get_mock_object_store()

        def build_mock_client(bucket_name: str) -> StorageClient:
            logger.debug("Using mock storage client", extra={"bucket": bucket_name})
            return create_storage_client(mock_mode=True, bucket_name=bucket_name, store=store)

        return build_mock_client

    def build_s3_client(bucket_name: str) -> StorageClient:
        config = StorageConfig(
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            bucket_name=bucket_name,
            region=settings.storage_region,
            endpoint_url=settings.aws_endpoint_url,
            max_attempts=settings.storage_max_attempts,
            retry_mode=settings.storage_retry_mode,
        )
        return create_storage_client(config=config)

    return build_s3_client


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
StorageFactoryDep = Annotated[StorageClientFactory, Depends(get_storage_factory)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
