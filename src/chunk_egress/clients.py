# src/chunk_egress/clients.py

"""
Storage client abstraction and its boto3-backed S3 implementation.

The egress core only needs three capabilities from the object store: make
sure the target container exists, ask whether a key is taken, and put a
stream under a key. ``S3StorageClient`` wraps a boto3 S3 client and maps
botocore failures onto the service's exception hierarchy. A missing object
is an ordinary ``False`` from ``exists``, never an exception.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO, NoReturn, Optional, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from .exceptions import (
    ContainerNotFoundError,
    S3AccessDeniedError,
    S3ThrottlingError,
    S3TimeoutError,
    StorageTransportError,
)

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client as S3ClientType

    from .config import EgressConfig

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
_ACCESS_DENIED_CODES = {"403", "AccessDenied", "Forbidden"}
_THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "SlowDown",
    "503",
}
_TIMEOUT_CODES = {"RequestTimeout", "RequestTimeoutException"}


class ContainerStatus(Enum):
    EXISTS = "exists"
    CREATED = "created"


class StorageClient(Protocol):
    """The object store operations the egress core depends on."""

    def ensure_container_exists(
        self, name: str, auto_create: bool = True
    ) -> ContainerStatus: ...

    def exists(self, container: str, key: str) -> bool: ...

    def put(
        self, container: str, key: str, stream: BinaryIO, mime_type: str
    ) -> None: ...


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _raise_mapped(
    error: Exception, operation: str, bucket: str, key: Optional[str] = None
) -> NoReturn:
    """Translates a botocore failure into the matching service exception."""
    if not isinstance(error, ClientError):
        raise S3TimeoutError(
            operation,
            reason=type(error).__name__,
            context={"bucket": bucket, "key": key, "transport_error": str(error)},
        ) from error

    error_code = _error_code(error)
    error_message = error.response.get("Error", {}).get("Message", str(error))
    aws_context = {
        "bucket": bucket,
        "key": key,
        "aws_error_code": error_code,
        "aws_error_message": error_message,
    }

    if error_code in _ACCESS_DENIED_CODES:
        raise S3AccessDeniedError(bucket=bucket, key=key, context=aws_context) from error
    if error_code in _THROTTLING_CODES:
        raise S3ThrottlingError(operation, context=aws_context) from error
    if error_code in _TIMEOUT_CODES:
        raise S3TimeoutError(operation, reason=error_message, context=aws_context) from error
    raise StorageTransportError(
        f"S3 {operation} failed: {error_message}",
        error_code="S3_CLIENT_ERROR",
        context=aws_context,
    ) from error


class S3StorageClient:
    """
    A wrapper for S3 client operations used by the chunk egress core.
    """

    def __init__(
        self,
        s3_client: "S3ClientType",
        kms_key_id: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """
        Initializes the S3StorageClient.

        Args:
            s3_client: A typed boto3 S3 client.
            kms_key_id: Optional KMS key ID for server-side encryption.
            region: Region used as the location constraint of created buckets.
        """
        self._client = s3_client
        self._kms_key_id = kms_key_id
        self._region = region
        if self._kms_key_id:
            logger.debug(
                "S3StorageClient initialized with SSE-KMS enabled.",
                extra={"kms_key_id": self._kms_key_id},
            )

    def ensure_container_exists(
        self, name: str, auto_create: bool = True
    ) -> ContainerStatus:
        try:
            self._client.head_bucket(Bucket=name)
            return ContainerStatus.EXISTS
        except ClientError as e:
            if _error_code(e) not in _NOT_FOUND_CODES:
                _raise_mapped(e, "HeadBucket", name)
            if not auto_create:
                raise ContainerNotFoundError(name) from e
        except (ReadTimeoutError, EndpointConnectionError) as e:
            _raise_mapped(e, "HeadBucket", name)

        logger.warning(f"Creating container `{name}`.", extra={"bucket": name})
        create_args: dict[str, Any] = {"Bucket": name}
        if self._region and self._region != "us-east-1":
            create_args["CreateBucketConfiguration"] = {
                "LocationConstraint": self._region
            }
        try:
            self._client.create_bucket(**create_args)
        except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
            _raise_mapped(e, "CreateBucket", name)
        return ContainerStatus.CREATED

    def exists(self, container: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=container, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            _raise_mapped(e, "HeadObject", container, key)
        except (ReadTimeoutError, EndpointConnectionError) as e:
            _raise_mapped(e, "HeadObject", container, key)

    def put(self, container: str, key: str, stream: BinaryIO, mime_type: str) -> None:
        """Uploads a file-like object to S3 via a managed, streaming upload."""
        extra_args: dict[str, Any] = {"ContentType": mime_type}
        if self._kms_key_id:
            extra_args.update(
                {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": self._kms_key_id}
            )
        logger.debug(
            "Uploading chunk",
            extra={
                "bucket": container,
                "key": key,
                "kms_enabled": bool(self._kms_key_id),
            },
        )

        try:
            self._client.upload_fileobj(
                Fileobj=stream, Bucket=container, Key=key, ExtraArgs=extra_args
            )
        except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
            _raise_mapped(e, "PutObject", container, key)


def build_s3_client(config: "EgressConfig") -> S3StorageClient:
    """Creates the boto3 client described by the configuration and wraps it."""
    session_args: dict[str, Any] = {}
    if config.access_key_id:
        session_args["aws_access_key_id"] = config.access_key_id
        session_args["aws_secret_access_key"] = config.secret_access_key
    if config.region:
        session_args["region_name"] = config.region

    session = boto3.Session(**session_args)
    client = session.client(
        "s3",
        endpoint_url=config.endpoint_url,
        verify=config.ssl_verify,
        config=BotoConfig(retries={"mode": "standard"}),
    )
    return S3StorageClient(client, kms_key_id=config.kms_key_id, region=config.region)
