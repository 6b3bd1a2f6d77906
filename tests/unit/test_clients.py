# tests/unit/test_clients.py

"""
Unit tests for the S3StorageClient wrapper in src/chunk_egress/clients.py.

These tests ensure that our storage client correctly interacts with the
underlying boto3 client, passing the expected arguments, treating missing
objects as a normal ``False`` and mapping botocore failures onto the
service's exception types.
"""

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from chunk_egress.clients import ContainerStatus, S3StorageClient, build_s3_client
from chunk_egress.exceptions import (
    ContainerNotFoundError,
    S3AccessDeniedError,
    S3ThrottlingError,
    S3TimeoutError,
    StorageTransportError,
)


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} message"}}, operation)


# -----------------------------------------------------------------------------
# Fixtures for setting up clients with mock dependencies
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_boto_s3_client() -> MagicMock:
    """Yields a MagicMock for the boto3 S3 client."""
    return MagicMock()


@pytest.fixture
def s3_client(mock_boto_s3_client: MagicMock) -> S3StorageClient:
    """Yields an instance of our storage client without KMS."""
    return S3StorageClient(s3_client=mock_boto_s3_client)


@pytest.fixture
def s3_client_with_kms(mock_boto_s3_client: MagicMock) -> S3StorageClient:
    """Yields an instance of our storage client with KMS enabled."""
    return S3StorageClient(s3_client=mock_boto_s3_client, kms_key_id="test-kms-key")


# -----------------------------------------------------------------------------
# exists
# -----------------------------------------------------------------------------


def test_exists_true_when_head_object_succeeds(s3_client, mock_boto_s3_client):
    assert s3_client.exists("bucket", "logs/0.gz") is True
    mock_boto_s3_client.head_object.assert_called_once_with(Bucket="bucket", Key="logs/0.gz")


@pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
def test_exists_false_when_object_missing(s3_client, mock_boto_s3_client, code):
    mock_boto_s3_client.head_object.side_effect = _client_error(code)

    assert s3_client.exists("bucket", "logs/0.gz") is False


def test_exists_access_denied(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.head_object.side_effect = _client_error("403")

    with pytest.raises(S3AccessDeniedError) as exc_info:
        s3_client.exists("bucket", "logs/0.gz")

    assert exc_info.value.context["key"] == "logs/0.gz"
    assert exc_info.value.context["aws_error_code"] == "403"


def test_exists_throttled(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.head_object.side_effect = _client_error("SlowDown")

    with pytest.raises(S3ThrottlingError):
        s3_client.exists("bucket", "logs/0.gz")


def test_exists_connection_error_is_a_timeout(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.head_object.side_effect = EndpointConnectionError(
        endpoint_url="https://s3.example.invalid"
    )

    with pytest.raises(S3TimeoutError) as exc_info:
        s3_client.exists("bucket", "logs/0.gz")

    assert isinstance(exc_info.value.__cause__, EndpointConnectionError)


def test_exists_unknown_error_is_a_transport_error(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.head_object.side_effect = _client_error("InternalError")

    with pytest.raises(StorageTransportError) as exc_info:
        s3_client.exists("bucket", "logs/0.gz")

    assert exc_info.value.error_code == "S3_CLIENT_ERROR"


# -----------------------------------------------------------------------------
# put
# -----------------------------------------------------------------------------


def test_put_uploads_with_content_type(s3_client, mock_boto_s3_client):
    stream = io.BytesIO(b"data")

    s3_client.put("bucket", "logs/0.gz", stream, "application/x-gzip")

    mock_boto_s3_client.upload_fileobj.assert_called_once_with(
        Fileobj=stream,
        Bucket="bucket",
        Key="logs/0.gz",
        ExtraArgs={"ContentType": "application/x-gzip"},
    )


def test_put_with_kms(s3_client_with_kms, mock_boto_s3_client):
    stream = io.BytesIO(b"data")

    s3_client_with_kms.put("bucket", "logs/0.gz", stream, "application/x-gzip")

    mock_boto_s3_client.upload_fileobj.assert_called_once_with(
        Fileobj=stream,
        Bucket="bucket",
        Key="logs/0.gz",
        ExtraArgs={
            "ContentType": "application/x-gzip",
            "ServerSideEncryption": "aws:kms",
            "SSEKMSKeyId": "test-kms-key",
        },
    )


def test_put_failure_is_mapped(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.upload_fileobj.side_effect = _client_error(
        "RequestTimeout", "PutObject"
    )

    with pytest.raises(S3TimeoutError) as exc_info:
        s3_client.put("bucket", "logs/0.gz", io.BytesIO(b"data"), "text/plain")

    assert exc_info.value.context["operation"] == "PutObject"


# -----------------------------------------------------------------------------
# ensure_container_exists
# -----------------------------------------------------------------------------


def test_ensure_container_exists_when_present(s3_client, mock_boto_s3_client):
    assert s3_client.ensure_container_exists("bucket") is ContainerStatus.EXISTS
    mock_boto_s3_client.create_bucket.assert_not_called()


def test_ensure_container_creates_missing_bucket(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.head_bucket.side_effect = _client_error("404", "HeadBucket")

    assert s3_client.ensure_container_exists("bucket") is ContainerStatus.CREATED
    mock_boto_s3_client.create_bucket.assert_called_once_with(Bucket="bucket")


def test_ensure_container_uses_region_constraint(mock_boto_s3_client):
    client = S3StorageClient(mock_boto_s3_client, region="eu-west-1")
    mock_boto_s3_client.head_bucket.side_effect = _client_error("NoSuchBucket", "HeadBucket")

    client.ensure_container_exists("bucket")

    mock_boto_s3_client.create_bucket.assert_called_once_with(
        Bucket="bucket",
        CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
    )


def test_ensure_container_missing_without_auto_create(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.head_bucket.side_effect = _client_error("404", "HeadBucket")

    with pytest.raises(ContainerNotFoundError):
        s3_client.ensure_container_exists("bucket", auto_create=False)

    mock_boto_s3_client.create_bucket.assert_not_called()


def test_ensure_container_access_denied(s3_client, mock_boto_s3_client):
    mock_boto_s3_client.head_bucket.side_effect = _client_error("403", "HeadBucket")

    with pytest.raises(S3AccessDeniedError):
        s3_client.ensure_container_exists("bucket")


# -----------------------------------------------------------------------------
# build_s3_client
# -----------------------------------------------------------------------------


@patch("chunk_egress.clients.boto3.Session")
def test_build_s3_client_passes_connection_settings(mock_session, make_config):
    config = make_config(
        endpoint_url="https://swift.example.com",
        region="eu-west-1",
        access_key_id="AKIA",
        secret_access_key="secret",
        ssl_verify=False,
        kms_key_id="kms",
    )

    client = build_s3_client(config)

    mock_session.assert_called_once_with(
        aws_access_key_id="AKIA",
        aws_secret_access_key="secret",
        region_name="eu-west-1",
    )
    session_client_kwargs = mock_session.return_value.client.call_args.kwargs
    assert session_client_kwargs["endpoint_url"] == "https://swift.example.com"
    assert session_client_kwargs["verify"] is False
    assert isinstance(client, S3StorageClient)
