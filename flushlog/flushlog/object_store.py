"""
ObjectStoreClient - S3 upload/download for flushed buffers.

Object keys follow the local file naming convention:

    s3://{bucket}/{prefix}/{component}{sub_label}.log

Uploads are private, AES-256 server-side encrypted and served as
attachments.
"""

import json
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import DEFAULT_TIMEOUT_S
from .errors import ObjectStoreError

logger = logging.getLogger(__name__)


def detect_content_type(data: bytes) -> str:
    """
    Guess the content type of a flushed buffer.

    Newline-delimited JSON is reported as ``application/x-ndjson``, other
    UTF-8 text as ``text/plain``, anything else as binary.
    """
    if not data:
        return "text/plain; charset=utf-8"
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return "application/octet-stream"

    lines = [line for line in text.splitlines() if line.strip()]
    try:
        if lines and all(isinstance(json.loads(line), dict) for line in lines):
            return "application/x-ndjson"
    except ValueError:
        pass
    return "text/plain; charset=utf-8"


class ObjectStoreClient:
    """
    Thin S3 wrapper used by the flush engine.

    Usage:
        store = ObjectStoreClient(bucket="error-logs", region="eu-west-1")
        store.upload("checkout-42.log", data)
    """

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        prefix: str = "",
        timeout_s: float = DEFAULT_TIMEOUT_S,
        client=None,
    ):
        """
        Args:
            bucket: S3 bucket name
            region: AWS region
            prefix: Optional key prefix within the bucket
            timeout_s: Connect and read timeout for S3 requests
            client: Pre-built S3 client; created lazily when omitted
        """
        if not bucket:
            raise ValueError("ObjectStoreClient requires a bucket")
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self.timeout_s = timeout_s
        self._s3_client = client

    @property
    def s3_client(self):
        """Lazy initialization of S3 client."""
        if self._s3_client is None:
            config = Config(
                connect_timeout=self.timeout_s,
                read_timeout=self.timeout_s,
                retries={"max_attempts": 1},
            )
            self._s3_client = boto3.client("s3", region_name=self.region, config=config)
        return self._s3_client

    def object_key(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    def upload(self, name: str, data: bytes) -> str:
        """
        Upload ``data`` under ``name``.

        Returns:
            The full object key

        Raises:
            ObjectStoreError: If the upload fails
        """
        key = self.object_key(name)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ACL="private",
                ServerSideEncryption="AES256",
                ContentType=detect_content_type(data),
                ContentLength=len(data),
                ContentDisposition="attachment",
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(self.bucket, key, str(e)) from e

        logger.debug(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return key

    def download(self, name: str) -> bytes:
        """
        Download the object stored under ``name``.

        Raises:
            ObjectStoreError: If the object cannot be fetched
        """
        key = self.object_key(name)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(self.bucket, key, str(e)) from e
