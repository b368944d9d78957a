"""Error taxonomy for the assessment engine.

Every error carries a stable ``reason`` code. Per-unit failures are converted
into negative criterion results using this code as ``details["error"]``;
failures that stop an attempt from starting become the ``reason`` of an
aborted attempt record.
"""

from dataclasses import dataclass


class AssessmentError(Exception):
    """Base class for all engine errors."""

    reason = "internal_error"


class NotFoundError(AssessmentError):
    """A challenge definition, tenant account or stored object does not exist."""

    reason = "not_found"


class IntegrityError(AssessmentError):
    """Check unit content does not match the fingerprint recorded in the definition."""

    reason = "integrity_violation"


@dataclass(frozen=True)
class PolicyFinding:
    """A single static safety policy violation."""

    category: str
    message: str
    line: int | None = None

    def __str__(self) -> str:
        location = f"line {self.line}: " if self.line is not None else ""
        return f"{location}[{self.category}] {self.message}"


class PolicyViolationError(AssessmentError):
    """Check unit was rejected by the static safety policy and must not run."""

    reason = "policy_violation"

    def __init__(self, unit_ref: str, findings: list[PolicyFinding]):
        self.unit_ref = unit_ref
        self.findings = list(findings)
        summary = "; ".join(str(f) for f in self.findings) or "rejected"
        super().__init__(f"Check unit {unit_ref} rejected: {summary}")


class AccessDeniedError(AssessmentError):
    """The tenant has not granted the trust relationship for delegated access."""

    reason = "access_denied"


class ThrottledError(AssessmentError):
    """The delegation authority rate-limited credential issuance."""

    reason = "throttled"


class ResourceExceededError(AssessmentError):
    """A check unit exceeded its memory or CPU ceiling."""

    reason = "resource_exceeded"


class UnitTimeoutError(AssessmentError):
    """A check unit exceeded its wall-clock timeout."""

    reason = "timeout"


class TransientInfrastructureError(AssessmentError):
    """Object store, registry or delegation authority was unreachable."""

    reason = "transient_infrastructure"


class CredentialRevokedError(AssessmentError):
    """A delegated credential was used after release or expiry."""

    reason = "credential_revoked"
