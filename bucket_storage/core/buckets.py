"""
Bucket provisioning.

Ensuring a bucket is a three step sequence: check whether it exists,
create it if it doesn't, then (re)apply the CORS policy. The CORS step
runs on every call, so calling ensure on an existing bucket also
normalizes its policy.

There is no locking. Two concurrent calls for a missing bucket can both
attempt creation; the backend rejects or accepts the second create and
the CORS step converges either way.
"""

import logging
from typing import Optional, Protocol

from .errors import StorageError
from .models import BucketInfo

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class BucketOperations(Protocol):
    """Bucket-level calls the provisioner needs from a storage client."""

    async def head_bucket(self, bucket_name: str) -> BucketInfo:
        """Return bucket state; exists=False when it is missing."""
        ...

    async def create_bucket(
        self,
        bucket_name: str,
        region: Optional[str] = None,
    ) -> BucketInfo:
        """Create the bucket in the given region."""
        ...

    async def configure_bucket_cors(self, bucket_name: str) -> None:
        """Overwrite the bucket CORS policy."""
        ...


# ---------------------------------------------------------------------------
# Provisioner
# ---------------------------------------------------------------------------

class BucketProvisioner:
    """
    Ensures a bucket exists and carries the standard CORS policy.

    Stateless apart from the storage client, so handlers build one per
    request alongside the client.
    """

    def __init__(self, storage: BucketOperations) -> None:
        self._storage = storage

    async def ensure_bucket(
        self,
        bucket_name: str,
        region: Optional[str] = None,
    ) -> BucketInfo:
        """
        Create the bucket if needed and apply CORS.

        Returns the head result (created=False) when the bucket already
        existed, or the create result (created=True) otherwise. A failure
        at any step aborts the whole call; a bucket that was created but
        could not be configured is reported only as that failure.
        """
        try:
            bucket_info = await self._storage.head_bucket(bucket_name)

            if bucket_info.exists:
                logger.debug("Bucket already exists", extra={"bucket": bucket_name})
            else:
                logger.info(
                    "Creating bucket",
                    extra={"bucket": bucket_name, "region": region}
                )
                bucket_info = await self._storage.create_bucket(bucket_name, region)

            await self._storage.configure_bucket_cors(bucket_name)

        except StorageError as e:
            logger.error(
                "Failed to ensure bucket",
                extra={"bucket": bucket_name, "error": str(e)}
            )
            raise StorageError(f"Failed to ensure bucket: {e}") from e

        return bucket_info
