"""
Bucket provisioning endpoint.

POST/GET /ensure-bucket makes sure the bucket named in x-bucket-name
exists in the configured region and carries the standard CORS policy.
Callers run it once before using a bucket; running it again is safe.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.buckets import BucketProvisioner
from ...core.errors import StorageError
from ...core.models import BucketInfo
from ..dependencies import SettingsDep, StorageFactoryDep
from ..responses import BUCKET_NAME_HEADER, ApiError, ErrorResponse, cors_headers, header_value

logger = logging.getLogger(__name__)

router = APIRouter()

OPERATION = "ensure_bucket"
ALLOWED_METHODS = ("GET", "POST", "OPTIONS")


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class BucketInfoResponse(BaseModel):
    """Bucket state after ensure. Field names match the S3 API casing."""
    model_config = ConfigDict(populate_by_name=True)

    bucket: str = Field(alias="Bucket", description="Bucket name")
    location: str = Field(alias="Location", description="Bucket region")
    exists: bool = Field(alias="Exists", description="Whether the bucket exists")
    created: bool = Field(alias="Created", description="True if this call created the bucket")
    creation_date: Optional[datetime] = Field(
        None,
        alias="CreationDate",
        description="Creation time, only when this call created the bucket",
    )

    @classmethod
    def from_domain(cls, info: BucketInfo) -> "BucketInfoResponse":
        return cls(
            bucket=info.name,
            location=info.location,
            exists=info.exists,
            created=info.created,
            creation_date=info.creation_date,
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.options("/ensure-bucket", include_in_schema=False)
async def ensure_bucket_preflight(settings: SettingsDep) -> Response:
    return Response(
        status_code=status.HTTP_200_OK,
        headers=cors_headers(settings, ALLOWED_METHODS),
    )


@router.api_route(
    "/ensure-bucket",
    methods=["GET", "POST"],
    response_model=BucketInfoResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Ensure bucket exists",
    description="Create the bucket if it does not exist and apply the CORS policy",
    responses={
        400: {"model": ErrorResponse, "description": "Missing x-bucket-name header"},
        500: {"model": ErrorResponse, "description": "Region not configured or storage failure"},
    },
)
async def ensure_bucket(
    request: Request,
    response: Response,
    settings: SettingsDep,
    storage_factory: StorageFactoryDep,
) -> BucketInfoResponse:
    """
    Ensure the bucket exists and has CORS configured.

    The region comes from AWS_REGION. A missing region is a deployment
    problem, so it is reported as 500 rather than a client error.
    """
    headers = cors_headers(settings, ALLOWED_METHODS)

    bucket_name = header_value(request, BUCKET_NAME_HEADER)
    if not bucket_name:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            "Bucket name is required. Please provide x-bucket-name header.",
            headers=cors_headers(settings),
        )

    if not settings.aws_region:
        logger.error("Ensure bucket called without AWS_REGION configured")
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "AWS_REGION environment variable is not configured.",
            headers=cors_headers(settings),
        )

    logger.info(
        "Ensuring bucket",
        extra={"bucket": bucket_name, "region": settings.aws_region}
    )

    try:
        storage = storage_factory(bucket_name)
        provisioner = BucketProvisioner(storage)
        bucket_info = await provisioner.ensure_bucket(bucket_name, settings.aws_region)
    except StorageError as e:
        logger.error(
            "Error in ensure bucket operation",
            extra={"bucket": bucket_name, "error": str(e)}
        )
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            str(e),
            operation=OPERATION,
            headers=headers,
        )

    logger.info(
        "Bucket ensured",
        extra={"bucket": bucket_name, "bucket_created": bucket_info.created}
    )

    response.headers.update(headers)
    return BucketInfoResponse.from_domain(bucket_info)
