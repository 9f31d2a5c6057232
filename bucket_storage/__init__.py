"""
Bucket Storage API - object storage operations exposed over HTTP.

This package contains the complete application:
- core: Framework-agnostic bucket provisioning and domain models
- infrastructure: Object storage client and multipart form parsing
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "1.0.0"
