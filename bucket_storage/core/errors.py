"""Storage error types shared by the adapter and the provisioning logic."""


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class StorageNotFoundError(StorageError):
    """Raised when an object has no content to return."""
    pass


class StorageConfigurationError(StorageError):
    """Raised when a client cannot be built from the deployment configuration."""
    pass
