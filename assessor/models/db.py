"""SQLAlchemy database models for the challenge registry and result store.

Design approach:
- Challenge definitions are stored as versioned JSON documents; a new version is
  a new row, rows are never updated in place
- Tenant accounts map participants to their cloud account and deployed stack
- Attempt records are append-only and keyed by
  (participant_id, challenge_id, attempt_timestamp)
- Timezone-aware timestamps with server-side defaults
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from assessor.models.enums import AttemptStatus


class Base(DeclarativeBase):
    """Base class for all database models."""


class ChallengeDefinitionRecord(Base):
    """Published challenge definition (one row per version).

    Attributes:
        challenge_id: Challenge identifier
        version: Version number (incrementing, immutable once written)
        document: Full ChallengeDefinition as JSON
        published_at: Timestamp when the version was published
    """

    __tablename__ = "challenge_definition"
    __table_args__ = (UniqueConstraint("challenge_id", "version", name="uq_challenge_version"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    published_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ChallengeDefinitionRecord(challenge_id={self.challenge_id}, version={self.version})>"


class TenantAccountRecord(Base):
    """Participant to tenant account mapping."""

    __tablename__ = "tenant_account"

    participant_id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(String(12), nullable=False)
    region: Mapped[str] = mapped_column(String, nullable=False)
    stack_name: Mapped[str] = mapped_column(String, nullable=False)

    def __repr__(self) -> str:
        return f"<TenantAccountRecord(participant_id={self.participant_id})>"


class AttemptRecord(Base):
    """Append-only record of one assessment attempt (scored or aborted).

    Attributes:
        attempt_id: Unique attempt identifier
        participant_id: Participant assessed
        challenge_id: Challenge applied
        attempt_timestamp: When the attempt was received
        status: SCORED or ABORTED
        score: Percentage score (None for aborted attempts)
        passed: Pass flag (None for aborted attempts)
        reason: Abort reason code (None for scored attempts)
        document: Full AssessmentResult or AbortedAttempt as JSON
        created_at: Timestamp when the record was written
    """

    __tablename__ = "assessment_attempt"
    __table_args__ = (
        UniqueConstraint(
            "participant_id", "challenge_id", "attempt_timestamp", name="uq_attempt_key"
        ),
    )

    attempt_id: Mapped[str] = mapped_column(String, primary_key=True)
    participant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    challenge_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    attempt_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[AttemptStatus] = mapped_column(
        Enum(AttemptStatus, name="attempt_status"), nullable=False
    )
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    reason: Mapped[str | None] = mapped_column(String, nullable=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<AttemptRecord(attempt_id={self.attempt_id}, status={self.status.value})>"
