"""Tests for environment-driven settings."""

from bucket_storage.config.settings import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_settings_read_aws_environment(monkeypatch):
    monkeypatch.setenv("AWS_REGION", "eu-central-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIDEXAMPLE")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")

    settings = Settings(_env_file=None)

    assert settings.aws_region == "eu-central-1"
    assert settings.storage_region == "eu-central-1"
    assert settings.validate_required_fields() == []


def test_storage_region_falls_back_when_region_missing(monkeypatch):
    monkeypatch.delenv("AWS_REGION", raising=False)

    settings = _settings()

    assert settings.aws_region is None
    assert settings.storage_region == "us-west-2"


def test_validate_required_fields_lists_missing_credentials(monkeypatch):
    for name in ("AWS_REGION", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(name, raising=False)

    missing = _settings().validate_required_fields()

    assert missing == ["AWS_REGION", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"]


def test_mock_mode_only_requires_region(monkeypatch):
    monkeypatch.delenv("AWS_ACCESS_KEY_ID", raising=False)
    monkeypatch.delenv("AWS_SECRET_ACCESS_KEY", raising=False)

    settings = _settings(storage_mock_mode=True, aws_region="us-east-1")

    assert settings.validate_required_fields() == []


def test_cors_origins_list_parses_comma_separated_values():
    settings = _settings(cors_origins="https://a.example.com, https://b.example.com,")

    assert settings.cors_origins_list == ["https://a.example.com", "https://b.example.com"]
    assert _settings(cors_origins="*").cors_origins_list == ["*"]


def test_max_upload_size_bytes():
    assert _settings(max_upload_size_mb=2).max_upload_size_bytes == 2 * 1024 * 1024
