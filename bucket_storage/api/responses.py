"""
Response shaping shared by the storage routes.

Every response, including errors, carries Access-Control-Allow-Origin
from settings. Data routes also list the methods and custom headers
they accept so browser clients can send x-bucket-name and friends.

Errors are raised as ApiError and rendered by the handler registered in
main.py as {"error": ..., "operation": ...}.
"""

from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config.settings import Settings

BUCKET_NAME_HEADER = "x-bucket-name"
FILE_KEY_HEADER = "x-file-key"
FILE_PATH_HEADER = "x-file-path"

# Headers every data route accepts
BASE_ALLOW_HEADERS = ("Content-Type", "x-functions-key", BUCKET_NAME_HEADER)


class ErrorResponse(BaseModel):
    """Body of every error response."""
    error: str = Field(description="Human-readable error message")
    operation: Optional[str] = Field(None, description="Operation that failed")


class ApiError(Exception):
    """
    An error that maps directly onto an HTTP response.

    Handlers raise this instead of HTTPException so the body keeps the
    {"error", "operation"} shape and the CORS headers survive.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        operation: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.operation = operation
        self.headers = headers or {}


def cors_headers(
    settings: Settings,
    methods: Optional[tuple[str, ...]] = None,
    extra_headers: tuple[str, ...] = (),
) -> dict[str, str]:
    """Build the CORS headers for a route's responses."""
    headers = {"Access-Control-Allow-Origin": settings.cors_origins}
    if methods:
        headers["Access-Control-Allow-Methods"] = ", ".join(methods)
        headers["Access-Control-Allow-Headers"] = ", ".join(BASE_ALLOW_HEADERS + extra_headers)
    return headers


def header_value(request: Request, name: str) -> Optional[str]:
    """Read a header, treating blank values as missing."""
    value = request.headers.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    body = ErrorResponse(error=exc.message, operation=exc.operation)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(exclude_none=True),
        headers=exc.headers,
    )
