"""
File listing, upload and download endpoints.

The bucket (and the file key, where there is one) travel in custom
headers rather than the URL:

- POST/GET /files           x-bucket-name, optional x-file-path prefix
- POST /files-upload        x-bucket-name, x-file-key, raw or multipart body
- POST /files-download      x-bucket-name, x-file-key -> 303 to a presigned URL

Downloads redirect instead of streaming the object so large files never
pass through this process.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from ...config.settings import Settings
from ...core.errors import StorageError
from ...core.models import FileInfo
from ...infrastructure.multipart import (
    FileTooLargeError,
    FormParseError,
    guess_content_type,
    is_multipart_form_data,
    parse_multipart_stream,
    read_stream_limited,
)
from ..dependencies import SettingsDep, StorageFactoryDep
from ..responses import (
    BUCKET_NAME_HEADER,
    FILE_KEY_HEADER,
    FILE_PATH_HEADER,
    ApiError,
    ErrorResponse,
    cors_headers,
    header_value,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_METHODS = ("GET", "POST", "OPTIONS")

LIST_EXTRA_HEADERS = (FILE_PATH_HEADER,)
UPLOAD_EXTRA_HEADERS = (FILE_KEY_HEADER, "x-file")
DOWNLOAD_EXTRA_HEADERS = (FILE_KEY_HEADER, FILE_PATH_HEADER)

MISSING_BUCKET_MESSAGE = "Bucket name is required. Please provide x-bucket-name header."
MISSING_KEY_MESSAGE = "File key not provided. Please specify x-file-key header."


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class FileInfoResponse(BaseModel):
    """Object metadata. Field names match the S3 API casing."""
    model_config = ConfigDict(populate_by_name=True)

    etag: str = Field(alias="ETag", description="Entity tag of the object")
    key: str = Field(alias="Key", description="Object key")
    last_modified: Optional[datetime] = Field(alias="LastModified", description="Last modification time")
    size: int = Field(alias="Size", ge=0, description="Object size in bytes")

    @classmethod
    def from_domain(cls, info: FileInfo) -> "FileInfoResponse":
        return cls(
            etag=info.etag,
            key=info.key,
            last_modified=info.last_modified,
            size=info.size,
        )


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _storage_failure(
    error: StorageError,
    operation: str,
    headers: dict[str, str],
) -> ApiError:
    logger.error(
        f"Error in {operation} operation",
        extra={"operation": operation, "error": str(error)}
    )
    return ApiError(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(error),
        operation=operation,
        headers=headers,
    )


def _require_key_and_bucket(request: Request, settings: Settings) -> tuple[str, str]:
    """File key is checked first, then the bucket; both are 400s."""
    file_key = header_value(request, FILE_KEY_HEADER)
    if not file_key:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            MISSING_KEY_MESSAGE,
            headers=cors_headers(settings),
        )

    bucket_name = header_value(request, BUCKET_NAME_HEADER)
    if not bucket_name:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            MISSING_BUCKET_MESSAGE,
            headers=cors_headers(settings),
        )

    return file_key, bucket_name


# ---------------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------------

@router.options("/files", include_in_schema=False)
async def files_preflight(settings: SettingsDep) -> Response:
    return Response(headers=cors_headers(settings, ALLOWED_METHODS, LIST_EXTRA_HEADERS))


@router.options("/files-upload", include_in_schema=False)
async def files_upload_preflight(settings: SettingsDep) -> Response:
    return Response(headers=cors_headers(settings, ALLOWED_METHODS, UPLOAD_EXTRA_HEADERS))


@router.options("/files-download", include_in_schema=False)
async def files_download_preflight(settings: SettingsDep) -> Response:
    return Response(headers=cors_headers(settings, ALLOWED_METHODS, DOWNLOAD_EXTRA_HEADERS))


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.api_route(
    "/files",
    methods=["GET", "POST"],
    response_model=list[FileInfoResponse],
    status_code=status.HTTP_200_OK,
    summary="List files",
    description="List up to 1000 files in the bucket, optionally filtered by key prefix",
    responses={
        401: {"model": ErrorResponse, "description": "Missing x-bucket-name header"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)
async def list_files(
    request: Request,
    response: Response,
    settings: SettingsDep,
    storage_factory: StorageFactoryDep,
) -> list[FileInfoResponse]:
    """
    List files in a bucket.

    The bucket name is part of the caller's access context here, so a
    missing header is answered with 401 rather than 400. There is no
    fallback bucket.
    """
    headers = cors_headers(settings, ALLOWED_METHODS, LIST_EXTRA_HEADERS)

    bucket_name = header_value(request, BUCKET_NAME_HEADER)
    if not bucket_name:
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED,
            "Authentication context incomplete. Bucket name required in x-bucket-name header.",
            headers=cors_headers(settings),
        )

    prefix = header_value(request, FILE_PATH_HEADER) or ""

    logger.info("Listing files", extra={"bucket": bucket_name, "prefix": prefix})

    try:
        storage = storage_factory(bucket_name)
        files = await storage.list_objects(prefix or None)
    except StorageError as e:
        raise _storage_failure(e, "files", headers)

    logger.info("Listed files", extra={"bucket": bucket_name, "count": len(files)})

    response.headers.update(headers)
    return [FileInfoResponse.from_domain(info) for info in files]


@router.post(
    "/files-upload",
    response_model=FileInfoResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload file",
    description="Upload a file as a raw body or a single-file multipart/form-data body",
    responses={
        400: {"model": ErrorResponse, "description": "Missing header or no file in the form"},
        413: {"model": ErrorResponse, "description": "File exceeds the upload size limit"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)
async def upload_file(
    request: Request,
    response: Response,
    settings: SettingsDep,
    storage_factory: StorageFactoryDep,
) -> FileInfoResponse:
    """
    Upload a file under the key from x-file-key.

    Multipart bodies must contain exactly one file; its part content
    type wins, otherwise the type is guessed from its file name. Raw
    bodies use the request Content-Type, or a guess from the key.
    """
    headers = cors_headers(settings, ALLOWED_METHODS, UPLOAD_EXTRA_HEADERS)
    file_key, bucket_name = _require_key_and_bucket(request, settings)

    content_type = request.headers.get("content-type", "")
    max_size = settings.max_upload_size_bytes

    try:
        if is_multipart_form_data(content_type):
            form = await parse_multipart_stream(
                request.stream(),
                content_type,
                max_file_size=max_size,
                max_files=1,
            )
            if not form.files:
                raise ApiError(
                    status.HTTP_400_BAD_REQUEST,
                    "No file provided in the request.",
                    headers=cors_headers(settings),
                )
            uploaded = form.files[0]
            file_data = uploaded.data
            file_type = uploaded.content_type or guess_content_type(uploaded.file_name)
        else:
            file_data = await read_stream_limited(request.stream(), max_size)
            file_type = content_type or guess_content_type(file_key)
    except FileTooLargeError as e:
        raise ApiError(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            str(e),
            operation="files_upload",
            headers=headers,
        )
    except FormParseError as e:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            str(e),
            operation="files_upload",
            headers=headers,
        )

    logger.info(
        "Uploading file",
        extra={
            "bucket": bucket_name,
            "key": file_key,
            "size_bytes": len(file_data),
            "content_type": file_type,
        }
    )

    try:
        storage = storage_factory(bucket_name)
        file_info = await storage.upload_file(file_key, file_data, file_type)
    except StorageError as e:
        raise _storage_failure(e, "files_upload", headers)

    response.headers.update(headers)
    return FileInfoResponse.from_domain(file_info)


@router.post(
    "/files-download",
    status_code=status.HTTP_303_SEE_OTHER,
    response_class=RedirectResponse,
    summary="Download file",
    description="Redirect to a presigned URL for the file",
    responses={
        303: {"description": "Redirect to a presigned download URL"},
        400: {"model": ErrorResponse, "description": "Missing x-file-key or x-bucket-name header"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)
async def download_file(
    request: Request,
    settings: SettingsDep,
    storage_factory: StorageFactoryDep,
) -> RedirectResponse:
    """
    Redirect the caller to a presigned URL for the file.

    The URL is valid for presigned_url_expiry_seconds. The response
    body is always empty; the file bytes come from storage directly.
    """
    headers = cors_headers(settings, ALLOWED_METHODS, DOWNLOAD_EXTRA_HEADERS)
    file_key, bucket_name = _require_key_and_bucket(request, settings)

    logger.info(
        "Generating download URL",
        extra={"bucket": bucket_name, "key": file_key}
    )

    try:
        storage = storage_factory(bucket_name)
        presigned_url = await storage.get_presigned_url(
            file_key,
            expires_in=settings.presigned_url_expiry_seconds,
        )
    except StorageError as e:
        raise _storage_failure(e, "files_download", headers)

    return RedirectResponse(
        url=presigned_url,
        status_code=status.HTTP_303_SEE_OTHER,
        headers=headers,
    )
