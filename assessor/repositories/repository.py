"""Repository for the challenge registry and the append-only result store.

Backed by SQLAlchemy 2.x. Challenge definitions and attempt outcomes are
stored as validated JSON documents next to the columns they are queried by.
"""

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from assessor.errors import NotFoundError, TransientInfrastructureError
from assessor.models.db import AttemptRecord, ChallengeDefinitionRecord, TenantAccountRecord
from assessor.models.domain import (
    AbortedAttempt,
    AssessmentResult,
    AttemptOutcome,
    ChallengeDefinition,
    TenantAccount,
)
from assessor.models.enums import AttemptStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository:
    """Registry lookups and result persistence.

    Implements both ``ChallengeRegistry`` and ``ResultSink``. Database
    connectivity failures surface as ``TransientInfrastructureError`` so
    callers can retry them.

    Attributes:
        engine: SQLAlchemy engine for database connections
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def session(self) -> Session:
        """Create a new SQLAlchemy session."""
        return self._session_factory()

    def _run(self, description: str, operation: Callable[[Session], T]) -> T:
        try:
            with self.session() as session:
                return operation(session)
        except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError) as e:
            logger.error(f"{description} failed: {e}")
            msg = f"{description}: database unavailable"
            raise TransientInfrastructureError(msg) from e

    def get_challenge_definition(self, challenge_id: str) -> ChallengeDefinition:
        """Return the latest published version of a challenge.

        Raises:
            NotFoundError: If the challenge has never been published
        """

        def _query(session: Session) -> ChallengeDefinition:
            stmt = (
                select(ChallengeDefinitionRecord)
                .where(ChallengeDefinitionRecord.challenge_id == challenge_id)
                .order_by(ChallengeDefinitionRecord.version.desc())
                .limit(1)
            )
            record = session.scalars(stmt).first()
            if record is None:
                msg = f"Challenge definition {challenge_id} not found"
                raise NotFoundError(msg)
            return ChallengeDefinition.model_validate(record.document)

        return self._run(f"Loading challenge {challenge_id}", _query)

    def get_tenant_account(self, participant_id: str) -> TenantAccount:
        """Return the participant's tenant account.

        Raises:
            NotFoundError: If the participant has no registered account
        """

        def _query(session: Session) -> TenantAccount:
            record = session.get(TenantAccountRecord, participant_id)
            if record is None:
                msg = f"Tenant account for participant {participant_id} not found"
                raise NotFoundError(msg)
            return TenantAccount(
                participant_id=record.participant_id,
                account_id=record.account_id,
                region=record.region,
                stack_name=record.stack_name,
            )

        return self._run(f"Loading tenant account for {participant_id}", _query)

    def put_challenge_definition(self, definition: ChallengeDefinition) -> None:
        """Publish a definition version. Published versions are immutable.

        Raises:
            ValueError: If this version was already published
        """

        def _insert(session: Session) -> None:
            session.add(
                ChallengeDefinitionRecord(
                    challenge_id=definition.id,
                    version=definition.version,
                    document=definition.model_dump(mode="json"),
                )
            )
            try:
                session.commit()
            except sa_exc.IntegrityError as e:
                session.rollback()
                msg = f"Challenge {definition.id} version {definition.version} is already published"
                raise ValueError(msg) from e

        self._run(f"Publishing challenge {definition.id}", _insert)
        logger.info(f"Published challenge {definition.id} v{definition.version}")

    def put_tenant_account(self, tenant: TenantAccount) -> None:
        """Register or update a participant's tenant account."""

        def _upsert(session: Session) -> None:
            session.merge(
                TenantAccountRecord(
                    participant_id=tenant.participant_id,
                    account_id=tenant.account_id,
                    region=tenant.region,
                    stack_name=tenant.stack_name,
                )
            )
            session.commit()

        self._run(f"Registering tenant for {tenant.participant_id}", _upsert)

    def _append(self, record: AttemptRecord) -> None:
        def _insert(session: Session) -> None:
            session.add(record)
            try:
                session.commit()
            except sa_exc.IntegrityError as e:
                session.rollback()
                msg = f"Attempt {record.attempt_id} is already recorded"
                raise ValueError(msg) from e

        self._run(f"Recording attempt {record.attempt_id}", _insert)

    def put_assessment_result(self, result: AssessmentResult) -> None:
        """Append a scored attempt."""
        self._append(
            AttemptRecord(
                attempt_id=result.attempt_id,
                participant_id=result.participant_id,
                challenge_id=result.challenge_id,
                attempt_timestamp=result.attempt_timestamp,
                status=AttemptStatus.SCORED,
                score=result.score,
                passed=result.passed,
                document=result.model_dump(mode="json"),
            )
        )
        logger.info(f"Stored result for attempt {result.attempt_id} (score={result.score})")

    def put_aborted_attempt(self, aborted: AbortedAttempt) -> None:
        """Append an aborted attempt for audit."""
        self._append(
            AttemptRecord(
                attempt_id=aborted.attempt_id,
                participant_id=aborted.participant_id,
                challenge_id=aborted.challenge_id,
                attempt_timestamp=aborted.attempt_timestamp,
                status=AttemptStatus.ABORTED,
                reason=aborted.reason,
                document=aborted.model_dump(mode="json"),
            )
        )
        logger.info(f"Stored aborted attempt {aborted.attempt_id} (reason={aborted.reason})")

    def list_attempts(self, participant_id: str, challenge_id: str) -> list[AttemptOutcome]:
        """Return every attempt for a participant and challenge, oldest first."""

        def _query(session: Session) -> list[AttemptOutcome]:
            stmt = (
                select(AttemptRecord)
                .where(
                    AttemptRecord.participant_id == participant_id,
                    AttemptRecord.challenge_id == challenge_id,
                )
                .order_by(AttemptRecord.attempt_timestamp, AttemptRecord.created_at)
            )
            outcomes: list[AttemptOutcome] = []
            for record in session.scalars(stmt):
                if record.status is AttemptStatus.SCORED:
                    outcomes.append(AssessmentResult.model_validate(record.document))
                else:
                    outcomes.append(AbortedAttempt.model_validate(record.document))
            return outcomes

        return self._run(f"Listing attempts for {participant_id}/{challenge_id}", _query)
