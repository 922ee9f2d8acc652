"""
Tests for ObjectStoreClient.
"""

import io
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from flushlog.errors import ObjectStoreError
from flushlog.object_store import ObjectStoreClient, detect_content_type


def _client_error(operation):
    return ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, operation)


def test_object_store_creation():
    """Test creating an ObjectStoreClient."""
    store = ObjectStoreClient(bucket="test-bucket", prefix="/logs/", region="eu-west-1")
    assert store.bucket == "test-bucket"
    assert store.prefix == "logs"
    assert store.object_key("svc-1.log") == "logs/svc-1.log"


def test_object_store_requires_bucket():
    with pytest.raises(ValueError):
        ObjectStoreClient(bucket="")


@patch("flushlog.object_store.boto3")
def test_client_is_created_lazily_with_timeouts(mock_boto3):
    store = ObjectStoreClient(bucket="test-bucket", region="eu-west-1", timeout_s=3)
    mock_boto3.client.assert_not_called()

    _ = store.s3_client
    _ = store.s3_client

    mock_boto3.client.assert_called_once()
    args, kwargs = mock_boto3.client.call_args
    assert args == ("s3",)
    assert kwargs["region_name"] == "eu-west-1"
    assert kwargs["config"].connect_timeout == 3
    assert kwargs["config"].read_timeout == 3


def test_upload_sets_private_encrypted_attachment():
    """Test that upload sends the expected put_object request."""
    mock_client = Mock()
    store = ObjectStoreClient(bucket="test-bucket", client=mock_client)

    data = b'{"msg": "boom"}\n'
    key = store.upload("checkout-42.log", data)

    assert key == "checkout-42.log"
    mock_client.put_object.assert_called_once_with(
        Bucket="test-bucket",
        Key="checkout-42.log",
        Body=data,
        ACL="private",
        ServerSideEncryption="AES256",
        ContentType="application/x-ndjson",
        ContentLength=len(data),
        ContentDisposition="attachment",
    )


def test_upload_failure_raises():
    mock_client = Mock()
    mock_client.put_object.side_effect = _client_error("PutObject")
    store = ObjectStoreClient(bucket="test-bucket", client=mock_client)

    with pytest.raises(ObjectStoreError) as exc_info:
        store.upload("svc.log", b"data")

    assert exc_info.value.bucket == "test-bucket"
    assert exc_info.value.object_key == "svc.log"


def test_download_returns_body():
    mock_client = Mock()
    mock_client.get_object.return_value = {"Body": io.BytesIO(b"stored")}
    store = ObjectStoreClient(bucket="test-bucket", prefix="logs", client=mock_client)

    assert store.download("svc.log") == b"stored"
    mock_client.get_object.assert_called_once_with(Bucket="test-bucket", Key="logs/svc.log")


def test_download_failure_raises():
    mock_client = Mock()
    mock_client.get_object.side_effect = _client_error("GetObject")
    store = ObjectStoreClient(bucket="test-bucket", client=mock_client)

    with pytest.raises(ObjectStoreError):
        store.download("missing.log")


class TestDetectContentType:
    def test_json_lines(self):
        assert detect_content_type(b'{"a": 1}\n{"b": 2}\n') == "application/x-ndjson"

    def test_plain_text(self):
        assert detect_content_type(b"just text\n") == "text/plain; charset=utf-8"

    def test_mixed_lines_are_text(self):
        assert detect_content_type(b'{"a": 1}\nnot json\n') == "text/plain; charset=utf-8"

    def test_binary(self):
        assert detect_content_type(b"\xff\xfe\x00") == "application/octet-stream"

    def test_empty(self):
        assert detect_content_type(b"") == "text/plain; charset=utf-8"
