"""
Shared fixtures.

The API fixtures build a fresh app per test with settings and the
storage factory overridden, so no environment variables or S3
credentials are needed.
"""

import pytest
from fastapi.testclient import TestClient

from bucket_storage.api.dependencies import get_storage_factory
from bucket_storage.config.settings import Settings, get_settings
from bucket_storage.infrastructure.storage.client import InMemoryObjectStore, MockStorageClient
from bucket_storage.main import create_app


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        aws_region="us-west-2",
        storage_mock_mode=True,
        cors_origins="*",
        max_upload_size_mb=1,
    )


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def app(settings, store):
    application = create_app()

    def build_client(bucket_name: str) -> MockStorageClient:
        return MockStorageClient(bucket_name, store=store)

    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_storage_factory] = lambda: build_client
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
