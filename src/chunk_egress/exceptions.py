# src/chunk_egress/exceptions.py

"""
Shared custom exceptions for the chunk egress service.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- ChunkEgressError (base)
  - RetryableError (the whole chunk upload can be retried)
    - S3ThrottlingError
    - S3TimeoutError
    - CompressionError
    - DiskSpaceError
  - NonRetryableError (should not be retried without operator action)
    - ConfigurationError
      - InvalidConfigurationError
    - CollisionExhaustedError
    - S3AccessDeniedError
    - ContainerNotFoundError
  - StorageTransportError (base for every remote store failure)
  - ResourceCleanupError (logged only, never raised)
"""

from typing import Any, Dict, Optional


class ChunkEgressError(Exception):
    """Base exception for all chunk egress errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(ChunkEgressError):
    """Base class for errors that can be retried."""

    pass


class NonRetryableError(ChunkEgressError):
    """Base class for errors that should not be retried."""

    pass


# === Configuration Errors ===


class ConfigurationError(NonRetryableError):
    """Raised when there's an error in the service configuration."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "CONFIGURATION_ERROR")
        super().__init__(message, **kwargs)


class InvalidConfigurationError(ConfigurationError):
    """Raised when a single configuration field holds an invalid value."""

    def __init__(self, config_field: str, value: Any = None, reason: str = "", **kwargs):
        message = f"Invalid configuration: {config_field}"
        if reason:
            message = f"{message} ({reason})"
        context = {
            "config_field": config_field,
            "value": str(value) if value is not None else None,
        }
        super().__init__(
            message, error_code="INVALID_CONFIGURATION", context=context, **kwargs
        )


# === Key Resolution Errors ===


class CollisionExhaustedError(NonRetryableError):
    """
    Raised when the key template cannot produce a new key for a colliding
    object and overwriting is forbidden.
    """

    def __init__(self, key: str, attempts: int, **kwargs):
        message = (
            f"Duplicated path is generated. Use %{{index}} in the object key "
            f"format: Path: {key}"
        )
        context = {"key": key, "attempts": attempts}
        super().__init__(
            message, error_code="DUPLICATE_PATH_GENERATED", context=context, **kwargs
        )
        self.key = key


# === Storage Errors ===


class StorageTransportError(ChunkEgressError):
    """Base class for failures talking to the object store."""

    pass


class S3AccessDeniedError(StorageTransportError, NonRetryableError):
    """Raised when access is denied to a container or object."""

    def __init__(self, bucket: str, key: Optional[str] = None, **kwargs):
        target = f"s3://{bucket}/{key}" if key else f"s3://{bucket}"
        message = f"Access denied to S3 resource: {target}"
        context = {"bucket": bucket, "key": key}
        context.update(kwargs.pop("context", {}))
        super().__init__(message, error_code="S3_ACCESS_DENIED", context=context, **kwargs)


class ContainerNotFoundError(StorageTransportError, NonRetryableError):
    """Raised when the target container is missing and auto-creation is off."""

    def __init__(self, bucket: str, **kwargs):
        message = f"The specified container does not exist: {bucket}"
        context = {"bucket": bucket}
        super().__init__(
            message, error_code="CONTAINER_NOT_FOUND", context=context, **kwargs
        )


class S3ThrottlingError(StorageTransportError, RetryableError):
    """Raised when S3 operations are being throttled."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation throttled: {operation}"
        context = {"operation": operation}
        context.update(kwargs.pop("context", {}))
        super().__init__(message, error_code="S3_THROTTLING", context=context, **kwargs)


class S3TimeoutError(StorageTransportError, RetryableError):
    """Raised when S3 operations time out or the endpoint is unreachable."""

    def __init__(self, operation: str, reason: str = "", **kwargs):
        message = f"S3 operation timed out: {operation}"
        if reason:
            message = f"{message} ({reason})"
        context = {"operation": operation}
        context.update(kwargs.pop("context", {}))
        super().__init__(message, error_code="S3_TIMEOUT", context=context, **kwargs)


# === Processing Errors ===


class CompressionError(RetryableError):
    """Raised when the external compressor fails while staging a chunk."""

    def __init__(self, reason: str, **kwargs):
        message = f"Chunk compression failed: {reason}"
        context = {"reason": reason}
        context.update(kwargs.pop("context", {}))
        super().__init__(
            message, error_code="COMPRESSION_FAILED", context=context, **kwargs
        )


class DiskSpaceError(RetryableError):
    """Raised when staging a chunk runs out of temporary disk space."""

    def __init__(self, available_bytes: int, **kwargs):
        message = f"Insufficient disk space while staging chunk: available {available_bytes}"
        context = {"available_bytes": available_bytes}
        context.update(kwargs.pop("context", {}))
        super().__init__(
            message, error_code="INSUFFICIENT_DISK_SPACE", context=context, **kwargs
        )


class ResourceCleanupError(ChunkEgressError):
    """Describes a failed temporary resource release. Logged, never raised."""

    def __init__(self, resource: str, reason: str, **kwargs):
        message = f"Failed to release temporary resource {resource}: {reason}"
        context = {"resource": resource, "reason": reason}
        super().__init__(
            message, error_code="RESOURCE_CLEANUP_FAILED", context=context, **kwargs
        )


# === Utility Functions ===


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is retryable."""
    return isinstance(error, RetryableError)


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, ChunkEgressError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "message": str(error),
            "retryable": False,
        }
