"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    uvicorn bucket_storage.main:app --reload

For production:
    gunicorn bucket_storage.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.responses import ApiError, api_error_handler, cors_headers
from .api.routes import buckets, files, health
from .config.settings import Settings, get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Storage clients are built per request, so there is nothing to open
    or close here; startup only reports the configuration.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "Bucket Storage API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": settings.storage_mock_mode,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Requests that need the missing values answer 500; others still work
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    logger.info("Bucket Storage API shutting down")


def _request_settings(request: Request) -> Settings:
    """Resolve settings the way route dependencies do, honouring overrides."""
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    return provider()


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    This function is called once at startup (in production) or
    multiple times (in tests with different configurations).
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        File storage operations backed by Amazon S3.

        ## Headers

        Buckets and files are addressed with headers, not URL segments:

        - `x-bucket-name`: target bucket (all data operations)
        - `x-file-key`: object key (upload, download)
        - `x-file-path`: key prefix filter (list)

        ## Workflow

        1. **Ensure bucket**: `POST /ensure-bucket`
        2. **Upload**: `POST /files-upload` with a raw or multipart body
        3. **List**: `POST /files`
        4. **Download**: `POST /files-download` redirects (303) to a presigned URL
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware answers browser preflights; routes add their own
    # headers for every response as well
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Location"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(buckets.router, tags=["Buckets"])
    app.include_router(files.router, tags=["Files"])

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - service summary."""
        return {
            "message": settings.api_title,
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    app.add_exception_handler(ApiError, api_error_handler)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        Prevents stack traces from leaking to clients. We log the full
        error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
            headers=cors_headers(_request_settings(request)),
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "bucket_storage.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
