"""Domain models for dynamic infrastructure assessment."""

from assessor.models.domain import (
    AbortedAttempt,
    AssessmentResult,
    AttemptOutcome,
    AttemptRef,
    ChallengeDefinition,
    Criterion,
    CriterionResult,
    ImplementedCriterion,
    InspectionTarget,
    Suggestion,
    TenantAccount,
)

__all__ = [
    "AbortedAttempt",
    "AssessmentResult",
    "AttemptOutcome",
    "AttemptRef",
    "ChallengeDefinition",
    "Criterion",
    "CriterionResult",
    "ImplementedCriterion",
    "InspectionTarget",
    "Suggestion",
    "TenantAccount",
]
