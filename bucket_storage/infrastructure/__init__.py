"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: Object storage (S3 via boto3)
- multipart: multipart/form-data parsing (python-multipart)

These wrappers translate between external formats and our domain models.
"""
