"""Core domain models for dynamic infrastructure assessments.

These models represent challenge definitions, tenant targets and attempt
outcomes as immutable value objects. Runtime-only resources (check units,
delegated credentials) live with the components that own them.
"""

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

STORE_SCHEME = "store://"

_SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class Criterion(BaseModel):
    """A single scored reliability requirement within a challenge.

    Attributes:
        id: Criterion identifier, unique within its definition
        name: Human-readable criterion name
        points: Weight awarded when the criterion is implemented
        check_unit_ref: Key of the check unit relative to the definition's location
        check_unit_sha256: Recorded SHA-256 of the check unit content (lower-case hex)
        description: What the criterion requires
        suggestion_text: Authored advice shown when the criterion is not met
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Criterion ID")
    name: str = Field(min_length=1, description="Criterion name")
    points: int = Field(ge=0, description="Points awarded when implemented")
    check_unit_ref: str = Field(min_length=1, description="Check unit key")
    check_unit_sha256: str = Field(description="Recorded content hash of the check unit")
    description: str = Field(default="", description="Requirement description")
    suggestion_text: str = Field(default="", description="Advice when not implemented")

    @field_validator("check_unit_sha256")
    @classmethod
    def must_be_sha256(cls, v: str) -> str:
        v = v.lower()
        if not _SHA256_PATTERN.match(v):
            msg = "check_unit_sha256 must be a 64 character hex SHA-256 digest"
            raise ValueError(msg)
        return v

    @field_validator("check_unit_ref")
    @classmethod
    def must_be_relative_key(cls, v: str) -> str:
        if v.startswith("/") or ".." in v.split("/"):
            msg = f"check_unit_ref must be a relative key without '..': {v}"
            raise ValueError(msg)
        return v


class ChallengeDefinition(BaseModel):
    """The ordered set of scoring criteria and weights for one reliability scenario.

    Immutable once published; a change is published as a new version.

    Attributes:
        id: Challenge identifier
        version: Published version number
        criteria: Ordered criteria (feedback follows this order)
        passing_score: Minimum percentage score that passes
        check_units_location: Object store address prefix (store://bucket/prefix)
        unit_timeout_seconds: Per-unit timeout override (clamped to platform ceiling)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Challenge ID")
    version: int = Field(default=1, ge=1, description="Definition version")
    criteria: tuple[Criterion, ...] = Field(min_length=1, description="Ordered criteria")
    passing_score: int = Field(ge=0, le=100, description="Minimum passing score (%)")
    check_units_location: str = Field(description="Object store prefix holding check units")
    unit_timeout_seconds: int | None = Field(
        default=None, gt=0, description="Per-unit timeout override (seconds)"
    )

    @field_validator("check_units_location")
    @classmethod
    def must_use_store_scheme(cls, v: str) -> str:
        if not v.startswith(STORE_SCHEME) or len(v) <= len(STORE_SCHEME):
            msg = f"check_units_location must use the {STORE_SCHEME} scheme: {v}"
            raise ValueError(msg)
        return v.rstrip("/")

    @model_validator(mode="after")
    def check_criteria(self) -> "ChallengeDefinition":
        ids = [c.id for c in self.criteria]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            msg = f"Criterion ids must be unique, duplicated: {duplicates}"
            raise ValueError(msg)
        # Units are loaded and cached per ref, so one ref has one fingerprint
        fingerprints: dict[str, str] = {}
        for c in self.criteria:
            recorded = fingerprints.setdefault(c.check_unit_ref, c.check_unit_sha256)
            if recorded != c.check_unit_sha256:
                msg = f"Criteria sharing check unit {c.check_unit_ref} record different hashes"
                raise ValueError(msg)
        if self.max_points <= 0:
            msg = "Sum of criterion points must be greater than zero"
            raise ValueError(msg)
        return self

    @property
    def max_points(self) -> int:
        return sum(c.points for c in self.criteria)

    def criterion(self, criterion_id: str) -> Criterion:
        for c in self.criteria:
            if c.id == criterion_id:
                return c
        raise KeyError(criterion_id)

    def criterion_for_unit(self, unit_ref: str) -> Criterion:
        for c in self.criteria:
            if c.check_unit_ref == unit_ref:
                return c
        raise KeyError(unit_ref)

    def unit_location(self, unit_ref: str) -> str:
        """Exact object store address of a check unit."""
        return f"{self.check_units_location}/{unit_ref}"


class TenantAccount(BaseModel):
    """A participant's independently owned cloud account and deployed stack."""

    model_config = ConfigDict(frozen=True)

    participant_id: str = Field(min_length=1)
    account_id: str = Field(pattern=r"^\d{12}$", description="12 digit cloud account id")
    region: str = Field(default="eu-west-2")
    stack_name: str = Field(min_length=1, description="Deployed stack identifier")


class InspectionTarget(BaseModel):
    """What a check unit inspects: the tenant account and the participant's stack."""

    model_config = ConfigDict(frozen=True)

    participant_id: str
    account_id: str
    region: str
    stack_name: str

    @classmethod
    def from_tenant(cls, tenant: TenantAccount) -> "InspectionTarget":
        return cls(
            participant_id=tenant.participant_id,
            account_id=tenant.account_id,
            region=tenant.region,
            stack_name=tenant.stack_name,
        )


class CriterionResult(BaseModel):
    """Outcome of evaluating one criterion against one target.

    A populated ``details["error"]`` marks an engine-side or unit-side failure;
    such results are never credited.
    """

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    implemented: bool
    details: dict[str, Any] = Field(default_factory=dict)
    points_awarded: int = Field(default=0, ge=0)

    @classmethod
    def failed(cls, criterion_id: str, error: str, **extra: Any) -> "CriterionResult":
        """Build a not-implemented result carrying a classified failure reason."""
        return cls(criterion_id=criterion_id, implemented=False, details={"error": error, **extra})

    @property
    def error(self) -> str | None:
        value = self.details.get("error")
        return str(value) if value is not None else None


class ImplementedCriterion(BaseModel):
    """Feedback entry for a criterion that was met."""

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    name: str
    points: int
    details: dict[str, Any] = Field(default_factory=dict)


class Suggestion(BaseModel):
    """Feedback entry for a criterion that was not met."""

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    name: str
    points_missed: int
    suggestion: str


class AttemptRef(BaseModel):
    """Identity of one assessment attempt."""

    model_config = ConfigDict(frozen=True)

    attempt_id: str
    participant_id: str
    challenge_id: str
    attempt_timestamp: datetime


class AssessmentResult(BaseModel):
    """Scored outcome of one assessment attempt. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    status: Literal["SCORED"] = "SCORED"
    attempt_id: str
    participant_id: str
    challenge_id: str
    challenge_version: int
    attempt_timestamp: datetime
    score: int = Field(ge=0, le=100)
    passed: bool
    implemented: tuple[ImplementedCriterion, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()
    criterion_results: tuple[CriterionResult, ...] = ()


class AbortedAttempt(BaseModel):
    """Audit record of an attempt that could not be scored."""

    model_config = ConfigDict(frozen=True)

    status: Literal["ABORTED"] = "ABORTED"
    attempt_id: str
    participant_id: str
    challenge_id: str
    attempt_timestamp: datetime
    state_reached: str
    reason: str
    message: str = ""


AttemptOutcome = AssessmentResult | AbortedAttempt
