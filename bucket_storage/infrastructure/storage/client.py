"""
Object storage client for bucket and file operations.

Talks to Amazon S3 (or any S3-compatible service via an endpoint
override) with a mock mode for local development.

One client is bound to one bucket. Handlers build a fresh client for
every request from the request's x-bucket-name header and the
environment; nothing is pooled across requests.

Mock mode keeps buckets and objects in memory, enabling API testing
without provisioning actual object storage.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from starlette.concurrency import run_in_threadpool

from ...config.settings import DEFAULT_S3_REGION
from ...core.errors import StorageConfigurationError, StorageError, StorageNotFoundError
from ...core.models import BucketInfo, FileInfo

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# A single listing page; larger buckets are truncated
MAX_LIST_KEYS = 1000

# Applied to every ensured bucket, replacing whatever was there
BUCKET_CORS_RULE = {
    "ID": "StorageApiAccess",
    "AllowedMethods": ["GET", "PUT", "POST", "DELETE"],
    "AllowedOrigins": ["*"],
    "AllowedHeaders": ["*"],
    "MaxAgeSeconds": 3000,
}

_NOT_FOUND_CODES = {"404", "NotFound", "NoSuchBucket"}


@dataclass
class StorageConfig:
    """
    Configuration for S3-compatible storage, bound to one bucket.

    Using a dataclass instead of raw parameters means:
    - Configuration is explicit and documented
    - Easy to validate at construction time
    - Simple to create test configurations
    """
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    region: str = "us-west-2"
    endpoint_url: Optional[str] = None
    max_attempts: int = 3
    retry_mode: str = "adaptive"

    def __post_init__(self) -> None:
        if not self.access_key_id or not self.secret_access_key:
            raise StorageConfigurationError(
                "Missing required S3 configuration. Please set AWS_ACCESS_KEY_ID "
                "and AWS_SECRET_ACCESS_KEY environment variables."
            )
        if not self.bucket_name:
            raise StorageConfigurationError(
                "Bucket name is required. Please provide the x-bucket-name header."
            )


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Using a protocol means tests can provide mocks and we can
    swap storage backends without changing dependent code.
    """

    @property
    def bucket_name(self) -> str:
        """Bucket this client is bound to."""
        ...

    async def list_objects(self, prefix: Optional[str] = None) -> list[FileInfo]:
        """List up to one page of objects whose key starts with prefix."""
        ...

    async def upload_file(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
    ) -> FileInfo:
        """Store an object and return its metadata."""
        ...

    async def get_file(self, key: str) -> bytes:
        """Download object content."""
        ...

    async def get_presigned_url(self, key: str, expires_in: int = 3600) -> str:
        """Generate temporary download URL."""
        ...

    async def create_bucket(
        self,
        bucket_name: str,
        region: Optional[str] = None,
    ) -> BucketInfo:
        """Create a bucket."""
        ...

    async def head_bucket(self, bucket_name: str) -> BucketInfo:
        """Report whether a bucket exists."""
        ...

    async def get_bucket_location(self, bucket_name: str) -> str:
        """Return the bucket region."""
        ...

    async def configure_bucket_cors(self, bucket_name: str) -> None:
        """Apply the standard CORS policy to a bucket."""
        ...


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _is_not_found(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    status_code = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return _error_code(error) in _NOT_FOUND_CODES or status_code == 404


class S3StorageClient:
    """
    Amazon S3 object storage client.

    Uses boto3; any S3-compatible service works through endpoint_url.
    boto3 is synchronous, so every call runs in Starlette's threadpool
    to keep the event loop free while the request waits on S3.

    Transient failures are retried by botocore itself (adaptive mode).
    Methods here never retry; they wrap failures in StorageError with
    an operation-specific prefix.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config

        boto_config = Config(
            signature_version="s3v4",
            retries={
                "max_attempts": config.max_attempts,
                "mode": config.retry_mode,
            },
        )

        self._s3_client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.debug(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "region": config.region,
                "endpoint": config.endpoint_url,
            }
        )

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._s3_client, operation)
        return await run_in_threadpool(method, **kwargs)

    async def list_objects(self, prefix: Optional[str] = None) -> list[FileInfo]:
        """
        List objects in the bucket with optional prefix filtering.

        Only the first page (1000 keys) is returned. Buckets with more
        objects come back truncated.
        """
        try:
            response = await self._call(
                "list_objects_v2",
                Bucket=self.bucket_name,
                Prefix=prefix or "",
                MaxKeys=MAX_LIST_KEYS,
            )
        except Exception as e:
            logger.error(
                "Failed to list objects",
                extra={"bucket": self.bucket_name, "prefix": prefix, "error": str(e)}
            )
            raise StorageError(f"Failed to list objects: {e}") from e

        return [
            FileInfo(
                key=obj.get("Key", ""),
                etag=obj.get("ETag", ""),
                last_modified=obj.get("LastModified"),
                size=obj.get("Size", 0),
            )
            for obj in response.get("Contents", [])
        ]

    async def upload_file(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
    ) -> FileInfo:
        """
        Upload an object, then read its metadata back.

        The put response carries only the ETag on most backends, so size
        and last-modified come from a head_object call. Values the
        backend leaves out fall back to what we know locally.
        """
        try:
            put_response = await self._call(
                "put_object",
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )

            head_response = await self._call(
                "head_object",
                Bucket=self.bucket_name,
                Key=key,
            )
        except Exception as e:
            logger.error(
                "Failed to upload file",
                extra={"bucket": self.bucket_name, "key": key, "error": str(e)}
            )
            raise StorageError(f"Failed to upload file: {e}") from e

        logger.info(
            "Uploaded file",
            extra={"bucket": self.bucket_name, "key": key, "size_bytes": len(body)}
        )

        return FileInfo(
            key=key,
            etag=put_response.get("ETag") or head_response.get("ETag") or "",
            last_modified=head_response.get("LastModified") or datetime.now(timezone.utc),
            size=head_response.get("ContentLength", len(body)),
        )

    async def get_file(self, key: str) -> bytes:
        """Download an object fully into memory."""
        try:
            response = await self._call(
                "get_object",
                Bucket=self.bucket_name,
                Key=key,
            )
            body = response.get("Body")
            data = await run_in_threadpool(body.read) if body is not None else None
        except ClientError as e:
            logger.error(
                "Failed to get file",
                extra={"bucket": self.bucket_name, "key": key, "error": str(e)}
            )
            if _error_code(e) == "NoSuchKey":
                raise StorageNotFoundError(f"Failed to get file: {e}") from e
            raise StorageError(f"Failed to get file: {e}") from e
        except Exception as e:
            logger.error(
                "Failed to get file",
                extra={"bucket": self.bucket_name, "key": key, "error": str(e)}
            )
            raise StorageError(f"Failed to get file: {e}") from e

        if data is None:
            raise StorageNotFoundError("Failed to get file: File not found or empty")

        return data

    async def get_presigned_url(self, key: str, expires_in: int = 3600) -> str:
        """
        Generate a temporary download URL.

        Presigned URLs enable:
        - Direct client downloads without routing through API
        - Time-limited access (security)
        - Reduced API server load

        Signing is local; the object itself is never read.
        """
        try:
            return self._s3_client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": key,
                },
                ExpiresIn=expires_in,
            )
        except Exception as e:
            logger.error(
                "Failed to generate presigned URL",
                extra={"bucket": self.bucket_name, "key": key, "error": str(e)}
            )
            raise StorageError(f"Failed to generate presigned URL: {e}") from e

    async def create_bucket(
        self,
        bucket_name: str,
        region: Optional[str] = None,
    ) -> BucketInfo:
        """
        Create a bucket.

        S3 rejects a LocationConstraint of us-east-1, so the
        configuration block is only sent for other regions.
        """
        kwargs: dict[str, Any] = {"Bucket": bucket_name}
        if region and region != DEFAULT_S3_REGION:
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}

        try:
            await self._call("create_bucket", **kwargs)
        except Exception as e:
            logger.error(
                "Failed to create bucket",
                extra={"bucket": bucket_name, "region": region, "error": str(e)}
            )
            raise StorageError(f"Failed to create bucket: {e}") from e

        logger.info("Created bucket", extra={"bucket": bucket_name, "region": region})

        return BucketInfo(
            name=bucket_name,
            location=region or DEFAULT_S3_REGION,
            exists=True,
            created=True,
            creation_date=datetime.now(timezone.utc),
        )

    async def head_bucket(self, bucket_name: str) -> BucketInfo:
        """
        Check if a bucket exists and retrieve its region.

        A missing bucket is a normal answer (exists=False), not an error.
        Anything else, such as access denied, is raised.
        """
        try:
            await self._call("head_bucket", Bucket=bucket_name)
        except Exception as e:
            if _is_not_found(e):
                return BucketInfo(
                    name=bucket_name,
                    location=DEFAULT_S3_REGION,
                    exists=False,
                    created=False,
                )
            logger.error(
                "Failed to check bucket",
                extra={"bucket": bucket_name, "error": str(e)}
            )
            raise StorageError(f"Failed to check bucket: {e}") from e

        try:
            region = await self.get_bucket_location(bucket_name)
        except StorageError as e:
            logger.debug(
                "Falling back to default bucket region",
                extra={"bucket": bucket_name, "error": str(e)}
            )
            region = DEFAULT_S3_REGION

        return BucketInfo(
            name=bucket_name,
            location=region,
            exists=True,
            created=False,
        )

    async def get_bucket_location(self, bucket_name: str) -> str:
        """Buckets in us-east-1 report no LocationConstraint at all."""
        try:
            response = await self._call("get_bucket_location", Bucket=bucket_name)
        except Exception as e:
            raise StorageError(f"Failed to get bucket location: {e}") from e

        return response.get("LocationConstraint") or DEFAULT_S3_REGION

    async def configure_bucket_cors(self, bucket_name: str) -> None:
        """Replace the bucket CORS configuration with the standard rule."""
        try:
            await self._call(
                "put_bucket_cors",
                Bucket=bucket_name,
                CORSConfiguration={"CORSRules": [dict(BUCKET_CORS_RULE)]},
            )
        except Exception as e:
            logger.error(
                "Failed to configure CORS",
                extra={"bucket": bucket_name, "error": str(e)}
            )
            raise StorageError(f"Failed to configure CORS: {e}") from e


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

@dataclass
class StoredObject:
    """An object held by the in-memory store."""
    data: bytes
    content_type: str
    etag: str
    last_modified: datetime


@dataclass
class StoredBucket:
    """A bucket held by the in-memory store."""
    region: str
    creation_date: datetime
    cors_rules: list[dict[str, Any]] = field(default_factory=list)
    objects: dict[str, StoredObject] = field(default_factory=dict)


class InMemoryObjectStore:
    """
    Buckets and objects shared by every mock client in the process.

    Kept separate from the client so a fresh client per request still
    sees what earlier requests uploaded.
    """

    def __init__(self) -> None:
        self.buckets: dict[str, StoredBucket] = {}


class MockStorageClient:
    """
    In-memory storage for local development.

    This mock enables testing the full API flow without provisioning
    real object storage. Missing buckets fail the same way S3 does, so
    callers have to ensure a bucket before using it.

    Not suitable for production, but perfect for development and testing.
    """

    def __init__(self, bucket_name: str, store: Optional[InMemoryObjectStore] = None) -> None:
        if not bucket_name:
            raise StorageConfigurationError(
                "Bucket name is required. Please provide the x-bucket-name header."
            )
        self._bucket_name = bucket_name
        self._store = store if store is not None else InMemoryObjectStore()

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    @property
    def store(self) -> InMemoryObjectStore:
        return self._store

    def _bucket(self, prefix: str) -> StoredBucket:
        bucket = self._store.buckets.get(self._bucket_name)
        if bucket is None:
            raise StorageError(f"{prefix}: The specified bucket does not exist")
        return bucket

    async def list_objects(self, prefix: Optional[str] = None) -> list[FileInfo]:
        bucket = self._bucket("Failed to list objects")
        keys = sorted(key for key in bucket.objects if key.startswith(prefix or ""))
        return [
            FileInfo(
                key=key,
                etag=bucket.objects[key].etag,
                last_modified=bucket.objects[key].last_modified,
                size=len(bucket.objects[key].data),
            )
            for key in keys[:MAX_LIST_KEYS]
        ]

    async def upload_file(
        self,
        key: str,
        body: bytes,
        content_type: Optional[str] = None,
    ) -> FileInfo:
        bucket = self._bucket("Failed to upload file")
        stored = StoredObject(
            data=bytes(body),
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            etag=f'"{hashlib.md5(body).hexdigest()}"',
            last_modified=datetime.now(timezone.utc),
        )
        bucket.objects[key] = stored

        logger.debug(
            "Stored file in mock storage",
            extra={"bucket": self._bucket_name, "key": key, "size_bytes": len(body)}
        )

        return FileInfo(
            key=key,
            etag=stored.etag,
            last_modified=stored.last_modified,
            size=len(stored.data),
        )

    async def get_file(self, key: str) -> bytes:
        bucket = self._bucket("Failed to get file")
        if key not in bucket.objects:
            raise StorageNotFoundError("Failed to get file: File not found or empty")
        return bucket.objects[key].data

    async def get_presigned_url(self, key: str, expires_in: int = 3600) -> str:
        """Return a mock URL; like real presigning, it doesn't check the key exists."""
        return f"mock://storage/{self._bucket_name}/{key}?expires_in={expires_in}"

    async def create_bucket(
        self,
        bucket_name: str,
        region: Optional[str] = None,
    ) -> BucketInfo:
        if bucket_name in self._store.buckets:
            raise StorageError(
                "Failed to create bucket: Your previous request to create the "
                "named bucket succeeded and you already own it."
            )
        created_at = datetime.now(timezone.utc)
        self._store.buckets[bucket_name] = StoredBucket(
            region=region or DEFAULT_S3_REGION,
            creation_date=created_at,
        )
        return BucketInfo(
            name=bucket_name,
            location=region or DEFAULT_S3_REGION,
            exists=True,
            created=True,
            creation_date=created_at,
        )

    async def head_bucket(self, bucket_name: str) -> BucketInfo:
        bucket = self._store.buckets.get(bucket_name)
        if bucket is None:
            return BucketInfo(
                name=bucket_name,
                location=DEFAULT_S3_REGION,
                exists=False,
                created=False,
            )
        return BucketInfo(
            name=bucket_name,
            location=bucket.region,
            exists=True,
            created=False,
        )

    async def get_bucket_location(self, bucket_name: str) -> str:
        bucket = self._store.buckets.get(bucket_name)
        if bucket is None:
            raise StorageError(
                "Failed to get bucket location: The specified bucket does not exist"
            )
        return bucket.region

    async def configure_bucket_cors(self, bucket_name: str) -> None:
        bucket = self._store.buckets.get(bucket_name)
        if bucket is None:
            raise StorageError("Failed to configure CORS: The specified bucket does not exist")
        bucket.cors_rules = [dict(BUCKET_CORS_RULE)]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
    bucket_name: Optional[str] = None,
    store: Optional[InMemoryObjectStore] = None,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Factory function pattern because:
    - Centralizes client creation logic
    - Makes mock vs real decision explicit
    - Simplifies dependency injection in FastAPI

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing
        bucket_name: Bucket for the mock client (defaults to config's)
        store: Shared in-memory store for the mock client

    Returns:
        StorageClient implementation (S3 or Mock)
    """
    if mock_mode:
        name = bucket_name or (config.bucket_name if config else "")
        return MockStorageClient(name, store=store)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3StorageClient(config)
