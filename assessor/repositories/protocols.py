"""Narrow interfaces the orchestrator needs from its storage collaborators."""

from typing import Protocol

from assessor.models.domain import AbortedAttempt, AssessmentResult, ChallengeDefinition, TenantAccount


class ChallengeRegistry(Protocol):
    """Read access to published challenges and tenant accounts."""

    def get_challenge_definition(self, challenge_id: str) -> ChallengeDefinition:
        """Return the latest published version, raising NotFoundError if none exists."""
        ...

    def get_tenant_account(self, participant_id: str) -> TenantAccount:
        """Return the participant's tenant account, raising NotFoundError if unknown."""
        ...


class ResultSink(Protocol):
    """Append-only store for attempt outcomes."""

    def put_assessment_result(self, result: AssessmentResult) -> None: ...

    def put_aborted_attempt(self, aborted: AbortedAttempt) -> None: ...
