"""STS AssumeRole client used as the delegation authority for tenant accounts."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from assessor.aws.errors import classify_aws_error

logger = logging.getLogger(__name__)

_SESSION_NAME_INVALID = re.compile(r"[^\w+=,.@-]")
SESSION_NAME_MAX_LENGTH = 64
PARTITION = "aws"


def session_name_for(attempt_id: str) -> str:
    """Build an STS-acceptable role session name from an attempt id."""
    name = _SESSION_NAME_INVALID.sub("-", f"assess-{attempt_id}")
    return name[:SESSION_NAME_MAX_LENGTH]


def role_arn(account_id: str, role_name: str) -> str:
    return f"arn:{PARTITION}:iam::{account_id}:role/{role_name}"


@dataclass(frozen=True)
class IssuedCredentials:
    """Raw credential material returned by the delegation authority."""

    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime | None = None

    def __repr__(self) -> str:
        return f"IssuedCredentials(access_key_id='{self.access_key_id[:4]}****', expiration={self.expiration})"


class StsDelegationAuthority:
    """Issues short-lived credentials for a role in a tenant account."""

    def __init__(
        self,
        region: str,
        endpoint_url: str | None = None,
        timeout_seconds: int = 10,
        client=None,
    ):
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
            client = boto3.client("sts", **client_kwargs)
        self.sts = client

    def assume_role(
        self,
        account_id: str,
        role_name: str,
        external_id: str,
        duration_seconds: int,
        session_name: str,
    ) -> IssuedCredentials:
        """Assume the read-only inspection role in a tenant account.

        Raises:
            AccessDeniedError: Trust relationship missing or external id rejected
            ThrottledError: STS rate-limited the request
            TransientInfrastructureError: STS unreachable or failed
        """
        arn = role_arn(account_id, role_name)
        logger.info(f"Assuming {arn} (session {session_name}, {duration_seconds}s)")
        try:
            response = self.sts.assume_role(
                RoleArn=arn,
                RoleSessionName=session_name,
                ExternalId=external_id,
                DurationSeconds=duration_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"AssumeRole failed for account {account_id}: {type(e).__name__}")
            raise classify_aws_error(e, f"Assuming role in account {account_id}") from e

        credentials = response["Credentials"]
        return IssuedCredentials(
            access_key_id=credentials["AccessKeyId"],
            secret_access_key=credentials["SecretAccessKey"],
            session_token=credentials["SessionToken"],
            expiration=credentials.get("Expiration"),
        )
