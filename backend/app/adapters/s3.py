"""S3-backed object store."""

import asyncio
import logging
from typing import Any

import boto3
import botocore.config
from botocore.exceptions import BotoCoreError, ClientError

from backend.app.config import Settings
from backend.app.errors import ObjectNotFoundError, UpstreamError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def create_s3_client(settings: Settings) -> Any:
    """Build a low-level S3 client configured for Signature V4.

    Credentials come from the default provider chain (environment, profile,
    instance role); nothing is read from settings.
    """
    return boto3.client(
        "s3",
        region_name=settings.aws_region,
        config=botocore.config.Config(signature_version="s3v4"),
    )


class S3ObjectStore:
    """ObjectStore implementation over one S3 bucket.

    boto3 is synchronous; calls run in a worker thread so the event loop
    stays free.
    """

    def __init__(self, client: Any, bucket: str) -> None:
        if not bucket:
            raise ValueError("S3ObjectStore requires a bucket name")
        self._client = client
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    async def get(self, location: str) -> bytes:
        """Read an object's bytes.

        Raises:
            ObjectNotFoundError: If the key does not exist
            UpstreamError: On any other S3 failure
        """
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self._bucket, Key=location
            )
            body = response["Body"]
            try:
                return await asyncio.to_thread(body.read)
            finally:
                body.close()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_CODES:
                raise ObjectNotFoundError(f"No object at s3://{self._bucket}/{location}") from e
            raise UpstreamError(f"S3 get_object failed for {location}: {code}") from e
        except BotoCoreError as e:
            raise UpstreamError(f"S3 get_object failed for {location}: {e}") from e

    async def put(self, location: str, data: bytes, content_type: str) -> None:
        """Write an object, overwriting any existing one."""
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=location,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"S3 put_object failed for {location}: {e}") from e

        logger.debug(f"Stored s3://{self._bucket}/{location} ({len(data)} bytes)")

    async def presign_upload(self, location: str, content_type: str, expires_in: int) -> str:
        """Presigned PUT URL bound to the key and content type."""
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                "put_object",
                Params={"Bucket": self._bucket, "Key": location, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"Could not presign upload for {location}: {e}") from e
