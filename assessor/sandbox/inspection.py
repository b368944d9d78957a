"""Read-only inspection surface handed to check units.

Units never see credentials or boto3 sessions. They ask the context for a
client by service name and receive a proxy that only forwards describe, list
and get operations to a client built from the delegated credential.
"""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

READ_ONLY_PREFIXES = ("describe_", "list_", "get_")
# Client helpers that are not API calls but still must not be reachable
_BLOCKED_OPERATIONS = {"get_waiter", "generate_presigned_url", "generate_presigned_post"}


def is_read_only_operation(operation: str) -> bool:
    if operation in _BLOCKED_OPERATIONS:
        return False
    return operation.startswith(READ_ONLY_PREFIXES)


class InspectionDeniedError(PermissionError):
    """A unit asked for a service or operation outside the read-only surface."""


class ReadOnlyClient:
    """Proxy over a boto3 client exposing read-only operations only."""

    __slots__ = ("_service", "_client")

    def __init__(self, service: str, client: Any):
        self._service = service
        self._client = client

    def get_paginator(self, operation: str):
        if not is_read_only_operation(operation):
            msg = f"{self._service}.{operation} is not a read-only operation"
            raise InspectionDeniedError(msg)
        return self._client.get_paginator(operation)

    def can_paginate(self, operation: str) -> bool:
        return is_read_only_operation(operation) and self._client.can_paginate(operation)

    def __getattr__(self, name: str):
        if name.startswith("_") or not is_read_only_operation(name):
            msg = f"{self._service}.{name} is not a read-only operation"
            raise InspectionDeniedError(msg)
        return getattr(self._client, name)

    def __repr__(self) -> str:
        return f"ReadOnlyClient(service='{self._service}')"


def delegated_client_factory(
    credentials: dict[str, str],
    region: str,
    endpoint_url: str | None = None,
    timeout_seconds: int = 10,
    session_factory: Callable[..., Any] | None = None,
) -> Callable[[str], Any]:
    """Build a function that creates boto3 clients from a delegated credential.

    The credential lives only in the returned closure; nothing handed to a
    check unit keeps it as an attribute.
    """
    session = None

    def make_client(service: str) -> Any:
        nonlocal session
        if session is None:
            factory = session_factory
            if factory is None:
                import boto3

                factory = boto3.session.Session
            session = factory(
                aws_access_key_id=credentials["aws_access_key_id"],
                aws_secret_access_key=credentials["aws_secret_access_key"],
                aws_session_token=credentials["aws_session_token"],
                region_name=credentials.get("region_name") or region,
            )

        from botocore.config import Config

        kwargs: dict = {
            "config": Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 2, "mode": "standard"},
            )
        }
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        logger.debug(f"Creating inspection client for {service} in {region}")
        return session.client(service, **kwargs)

    return make_client


class Inspector:
    """The ``ctx`` object passed to every check unit.

    Attributes:
        participant_id: Participant whose stack is inspected
        account_id: Tenant account id
        region: Region of the participant's stack
        stack_name: Identifier of the participant's deployed stack
    """

    def __init__(
        self,
        target: dict[str, str],
        client_factory: Callable[[str], Any],
        allowed_services: list[str],
    ):
        self.participant_id = target["participant_id"]
        self.account_id = target["account_id"]
        self.region = target["region"]
        self.stack_name = target["stack_name"]
        self._client_factory = client_factory
        self._allowed_services = frozenset(allowed_services)
        self._clients: dict[str, ReadOnlyClient] = {}

    def client(self, service: str) -> ReadOnlyClient:
        """Return a read-only client for an allow-listed control-plane service.

        Raises:
            InspectionDeniedError: If the service is not allow-listed
        """
        if service not in self._allowed_services:
            msg = f"Service '{service}' is not available to check units"
            raise InspectionDeniedError(msg)
        if service not in self._clients:
            self._clients[service] = ReadOnlyClient(service, self._client_factory(service))
        return self._clients[service]

    def __repr__(self) -> str:
        return f"Inspector(account_id='{self.account_id}', stack_name='{self.stack_name}')"
