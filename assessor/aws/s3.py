"""S3-backed object store for check unit content."""

import logging
from dataclasses import dataclass

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from assessor.aws.errors import classify_aws_error
from assessor.models.domain import STORE_SCHEME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreAddress:
    """Parsed ``store://bucket/prefix/key`` address."""

    bucket: str
    key: str

    @classmethod
    def parse(cls, location: str) -> "StoreAddress":
        """Parse an object store address.

        Raises:
            ValueError: If the address does not use the store:// scheme or has no key
        """
        if not location.startswith((STORE_SCHEME, "s3://")):
            msg = f"Unsupported object store address: {location}. Expected {STORE_SCHEME}bucket/key"
            raise ValueError(msg)
        bucket, _, key = location.split("://", 1)[1].partition("/")
        if not bucket or not key:
            msg = f"Object store address must include bucket and key: {location}"
            raise ValueError(msg)
        return cls(bucket=bucket, key=key)

    def __str__(self) -> str:
        return f"{STORE_SCHEME}{self.bucket}/{self.key}"


class S3ObjectStore:
    """Handles S3 reads of check unit artifacts.

    Every call carries connect/read deadlines; botocore's own retries are
    limited so the caller's backoff policy stays in control.
    """

    def __init__(
        self,
        region: str,
        endpoint_url: str | None = None,
        timeout_seconds: int = 10,
        client=None,
    ):
        self.region = region
        if client is None:
            client_kwargs: dict = {
                "region_name": region,
                "config": Config(
                    connect_timeout=timeout_seconds,
                    read_timeout=timeout_seconds,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            }
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **client_kwargs)
        self.s3 = client

    def get_object(self, location: str) -> bytes:
        """Fetch an object's bytes by exact address.

        Args:
            location: Address such as "store://challenges/web-tier/v3/units/multi_az.py"

        Returns:
            Raw object content

        Raises:
            NotFoundError: If the bucket or key does not exist
            AccessDeniedError: If the engine may not read the object
            TransientInfrastructureError: If S3 is unreachable or errors
        """
        address = StoreAddress.parse(location)
        logger.info(f"Fetching check unit from s3://{address.bucket}/{address.key}")
        try:
            response = self.s3.get_object(Bucket=address.bucket, Key=address.key)
            body = response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to fetch from S3: {e}")
            raise classify_aws_error(e, f"Fetching {address}") from e

        logger.info(f"Fetched {len(body)} bytes from {address}")
        return body
