"""Object storage wrapper (S3 via boto3)."""

from __future__ import annotations

import mimetypes
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from media.images import MediaError


class StorageError(MediaError):
    """PUT to the object store failed."""


class ObjectStore(Protocol):
    def put_object(self, bucket: str, key: str, body: bytes, acl: str) -> str: ...  # noqa: D401


class S3ObjectStore:
    """Thin ``put_object`` adapter returning the public locator of the object."""

    def __init__(
        self,
        *,
        region: str = "us-east-1",
        timeout_seconds: int = 30,
        client: Optional[Any] = None,
    ) -> None:
        self._region = region
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    def put_object(self, bucket: str, key: str, body: bytes, acl: str) -> str:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        try:
            self._client.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ACL=acl,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"put s3://{bucket}/{key} failed: {exc}") from exc
        return self.locator(bucket, key)

    def locator(self, bucket: str, key: str) -> str:
        return f"https://{bucket}.s3.{self._region}.amazonaws.com/{key}"
