"""Delegated cross-account credentials.

The broker negotiates a short-lived session for the read-only inspection role
in a tenant account. The resulting ``DelegatedCredential`` is a scoped,
non-cloneable handle owned by exactly one attempt: it cannot be copied or
pickled, its repr never shows secret material, and ``release()`` makes it
permanently inert.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from assessor.aws.sts import IssuedCredentials, StsDelegationAuthority, session_name_for
from assessor.common.retry import retry_async
from assessor.config import MAX_CREDENTIAL_LIFETIME_SECONDS, BrokerConfig
from assessor.errors import CredentialRevokedError, ThrottledError, TransientInfrastructureError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DelegatedCredential:
    """Short-lived, scoped credential for read-only inspection of one tenant account."""

    __slots__ = (
        "_access_key",
        "_secret_key",
        "_session_token",
        "account_id",
        "region",
        "issued_at",
        "expires_at",
        "_released",
        "_clock",
    )

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        session_token: str,
        account_id: str,
        region: str,
        issued_at: datetime,
        expires_at: datetime,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if expires_at - issued_at > timedelta(seconds=MAX_CREDENTIAL_LIFETIME_SECONDS):
            msg = "Delegated credential lifetime cannot exceed 15 minutes"
            raise ValueError(msg)
        self._access_key = access_key
        self._secret_key = secret_key
        self._session_token = session_token
        self.account_id = account_id
        self.region = region
        self.issued_at = issued_at
        self.expires_at = expires_at
        self._released = False
        self._clock = clock

    @property
    def is_released(self) -> bool:
        return self._released

    @property
    def is_expired(self) -> bool:
        return self._clock() >= self.expires_at

    @property
    def is_active(self) -> bool:
        return not self._released and not self.is_expired

    def remaining_seconds(self) -> float:
        if not self.is_active:
            return 0.0
        return (self.expires_at - self._clock()).total_seconds()

    def export(self) -> dict[str, str]:
        """Return the credential material for a single sandboxed invocation.

        Raises:
            CredentialRevokedError: If the handle was released or has expired
        """
        if self._released:
            msg = f"Credential for account {self.account_id} has been released"
            raise CredentialRevokedError(msg)
        if self.is_expired:
            msg = f"Credential for account {self.account_id} expired at {self.expires_at.isoformat()}"
            raise CredentialRevokedError(msg)
        return {
            "aws_access_key_id": self._access_key,
            "aws_secret_access_key": self._secret_key,
            "aws_session_token": self._session_token,
            "region_name": self.region,
        }

    def release(self) -> None:
        """Zero the secret material. Idempotent."""
        if self._released:
            return
        self._access_key = ""
        self._secret_key = ""
        self._session_token = ""
        self._released = True
        logger.info(f"Released delegated credential for account {self.account_id}")

    def __copy__(self):
        msg = "DelegatedCredential cannot be copied"
        raise TypeError(msg)

    def __deepcopy__(self, memo):
        msg = "DelegatedCredential cannot be copied"
        raise TypeError(msg)

    def __reduce__(self):
        msg = "DelegatedCredential cannot be pickled"
        raise TypeError(msg)

    def __repr__(self) -> str:
        state = "released" if self._released else f"expires_at={self.expires_at.isoformat()}"
        return f"DelegatedCredential(account_id='{self.account_id}', access_key='****', {state})"

    __str__ = __repr__


class CredentialBroker:
    """Issues delegated credentials for tenant accounts.

    Throttling and transient STS failures are retried with jittered backoff;
    access denial is permanent and surfaced immediately.
    """

    def __init__(
        self,
        config: BrokerConfig,
        authority: StsDelegationAuthority,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.authority = authority
        self._clock = clock
        self._sleep = sleep

    async def issue(
        self, tenant_account_id: str, session_tag: str, region: str = "eu-west-2"
    ) -> DelegatedCredential:
        """Issue a credential for the inspection role in ``tenant_account_id``.

        Args:
            tenant_account_id: 12 digit tenant account id
            session_tag: Identifies the requesting attempt in the tenant's audit trail
            region: Region the inspection clients will target

        Raises:
            AccessDeniedError: Tenant has not granted the trust relationship
            ThrottledError: Still throttled after the retry budget
            TransientInfrastructureError: STS unreachable after the retry budget
        """
        session_name = session_name_for(session_tag)

        async def _assume() -> IssuedCredentials:
            return await asyncio.to_thread(
                self.authority.assume_role,
                tenant_account_id,
                self.config.role_name,
                self.config.external_id,
                MAX_CREDENTIAL_LIFETIME_SECONDS,
                session_name,
            )

        issued = await retry_async(
            _assume,
            retry_on=(ThrottledError, TransientInfrastructureError),
            max_attempts=self.config.max_attempts,
            base_delay=self.config.backoff_base_seconds,
            max_delay=self.config.backoff_max_seconds,
            description=f"Credential issuance for account {tenant_account_id}",
            sleep=self._sleep,
        )

        issued_at = self._clock()
        expires_at = issued_at + timedelta(seconds=self.config.duration_seconds)
        if issued.expiration is not None and issued.expiration < expires_at:
            expires_at = issued.expiration
        logger.info(
            f"Issued delegated credential for account {tenant_account_id} "
            f"valid until {expires_at.isoformat()}"
        )
        return DelegatedCredential(
            access_key=issued.access_key_id,
            secret_key=issued.secret_access_key,
            session_token=issued.session_token,
            account_id=tenant_account_id,
            region=region,
            issued_at=issued_at,
            expires_at=expires_at,
            clock=self._clock,
        )
