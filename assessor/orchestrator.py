"""Assessment Orchestrator - drives one attempt from request to stored result.

Pipeline per attempt:
RECEIVED → DEFINITION_RESOLVED → CREDENTIAL_ACQUIRED → UNITS_LOADED →
EXECUTING → SCORED → PERSISTED, or ABORTED(reason) from any of them.

Per-unit failures never abort an attempt; they become not-implemented
criterion results. Only failures that stop the attempt from being scored at
all produce an ``AbortedAttempt``, which is persisted for audit.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from assessor.common import metrics
from assessor.common.log_utils import redact
from assessor.common.retry import retry_async
from assessor.common.tracing import ctx_attempt_id
from assessor.config import OrchestratorConfig
from assessor.credentials.broker import CredentialBroker, DelegatedCredential
from assessor.errors import (
    AccessDeniedError,
    AssessmentError,
    IntegrityError,
    NotFoundError,
    PolicyViolationError,
    ThrottledError,
    TransientInfrastructureError,
)
from assessor.loader.loader import CheckUnitLoader, ExecutableUnit
from assessor.models.domain import (
    AbortedAttempt,
    AttemptOutcome,
    AttemptRef,
    ChallengeDefinition,
    CriterionResult,
    InspectionTarget,
    TenantAccount,
)
from assessor.models.enums import AttemptState
from assessor.repositories.protocols import ChallengeRegistry, ResultSink
from assessor.sandbox.executor import SandboxedExecutor
from assessor.scoring.engine import score

logger = logging.getLogger(__name__)

MAX_ABORT_MESSAGE_LENGTH = 500
ATTEMPT_DEADLINE = "attempt_deadline"


class AttemptAbortedError(Exception):
    """Internal signal that the current attempt cannot be scored."""

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)


@dataclass
class AttemptContext:
    """Mutable bookkeeping for one in-flight attempt."""

    ref: AttemptRef
    state: AttemptState = AttemptState.RECEIVED
    transitions: list[tuple[AttemptState, datetime]] = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)

    def advance(self, state: AttemptState, note: str = "") -> None:
        previous = self.state
        self.state = state
        self.transitions.append((state, datetime.now(UTC)))
        suffix = f" ({note})" if note else ""
        logger.info(f"Attempt {self.ref.attempt_id}: {previous.value} -> {state.value}{suffix}")

    def elapsed(self) -> float:
        return time.monotonic() - self.started


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AssessmentOrchestrator:
    """Orchestrates assessment attempts for participants and challenges."""

    def __init__(
        self,
        registry: ChallengeRegistry,
        result_sink: ResultSink,
        broker: CredentialBroker,
        loader: CheckUnitLoader,
        executor: SandboxedExecutor,
        config: OrchestratorConfig,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.result_sink = result_sink
        self.broker = broker
        self.loader = loader
        self.executor = executor
        self.config = config
        self._clock = clock
        self._sleep = sleep

    async def assess(self, participant_id: str, challenge_id: str) -> AttemptOutcome:
        """Run one new attempt for (participant_id, challenge_id).

        Every call creates an independent attempt and record; earlier attempts
        are never touched.

        Returns:
            The scored AssessmentResult, or an AbortedAttempt with a reason code
        """
        attempt = AttemptContext(
            ref=AttemptRef(
                attempt_id=str(uuid.uuid4()),
                participant_id=participant_id,
                challenge_id=challenge_id,
                attempt_timestamp=self._clock(),
            )
        )
        token = ctx_attempt_id.set(attempt.ref.attempt_id)
        logger.info(f"Attempt {attempt.ref.attempt_id} received for {participant_id}/{challenge_id}")

        credential: DelegatedCredential | None = None
        try:
            definition, tenant = await self._resolve(participant_id, challenge_id)
            attempt.advance(AttemptState.DEFINITION_RESOLVED, f"version {definition.version}")

            credential = await self._acquire_credential(tenant, attempt.ref.attempt_id)
            attempt.advance(AttemptState.CREDENTIAL_ACQUIRED)

            units, contained = await self._load_units(definition)
            attempt.advance(AttemptState.UNITS_LOADED, f"{len(units)} runnable")

            attempt.advance(AttemptState.EXECUTING)
            results = await self._execute_all(attempt, definition, units, tenant, credential)
            credential.release()

            result = score(definition, [*results, *contained], attempt.ref)
            attempt.advance(AttemptState.SCORED, f"score {result.score}")

            await self._persist(result)
            attempt.advance(AttemptState.PERSISTED)
            await metrics.counter(metrics.ASSESSMENT_SCORED)
            return result

        except AttemptAbortedError as e:
            return await self._abort(attempt, e.reason, str(e))
        except Exception as e:
            logger.exception(f"Attempt {attempt.ref.attempt_id} failed unexpectedly: {e}")
            return await self._abort(attempt, "internal_error", f"{type(e).__name__}: {e}")
        finally:
            if credential is not None:
                credential.release()
            await metrics.duration(metrics.ATTEMPT_DURATION, attempt.elapsed())
            ctx_attempt_id.reset(token)

    async def _registry_call(self, description: str, func, *args):
        async def _call():
            return await asyncio.to_thread(func, *args)

        return await retry_async(
            _call,
            retry_on=(TransientInfrastructureError,),
            max_attempts=self.config.registry_max_attempts,
            base_delay=self.config.backoff_base_seconds,
            max_delay=self.config.backoff_max_seconds,
            description=description,
            sleep=self._sleep,
        )

    async def _resolve(
        self, participant_id: str, challenge_id: str
    ) -> tuple[ChallengeDefinition, TenantAccount]:
        try:
            definition = await self._registry_call(
                f"Resolving challenge {challenge_id}",
                self.registry.get_challenge_definition,
                challenge_id,
            )
        except NotFoundError as e:
            raise AttemptAbortedError("definition_not_found", str(e)) from e
        except TransientInfrastructureError as e:
            raise AttemptAbortedError("registry_unreachable", str(e)) from e

        try:
            tenant = await self._registry_call(
                f"Resolving tenant for {participant_id}",
                self.registry.get_tenant_account,
                participant_id,
            )
        except NotFoundError as e:
            raise AttemptAbortedError("tenant_not_found", str(e)) from e
        except TransientInfrastructureError as e:
            raise AttemptAbortedError("registry_unreachable", str(e)) from e

        return definition, tenant

    async def _acquire_credential(self, tenant: TenantAccount, attempt_id: str) -> DelegatedCredential:
        try:
            return await self.broker.issue(tenant.account_id, attempt_id, region=tenant.region)
        except AccessDeniedError as e:
            raise AttemptAbortedError("access_denied", str(e)) from e
        except ThrottledError as e:
            raise AttemptAbortedError("throttled", str(e)) from e
        except TransientInfrastructureError as e:
            raise AttemptAbortedError("delegation_unreachable", str(e)) from e

    def _contain_validation_failure(
        self, criterion_id: str, error: IntegrityError | PolicyViolationError
    ) -> CriterionResult:
        if not self.config.partial_credit_on_validation_failure:
            raise AttemptAbortedError(error.reason, str(error))
        logger.warning(f"Criterion {criterion_id} scored as not implemented: {error}")
        details: dict = {"message": str(error)[:MAX_ABORT_MESSAGE_LENGTH]}
        if isinstance(error, PolicyViolationError):
            details["findings"] = [str(f) for f in error.findings][:20]
        return CriterionResult.failed(criterion_id, error.reason, **details)

    async def _load_units(
        self, definition: ChallengeDefinition
    ) -> tuple[dict[str, ExecutableUnit], list[CriterionResult]]:
        outcomes = await asyncio.gather(
            *(self.loader.load(definition, c.check_unit_ref) for c in definition.criteria),
            return_exceptions=True,
        )

        units: dict[str, ExecutableUnit] = {}
        contained: list[CriterionResult] = []
        for criterion, outcome in zip(definition.criteria, outcomes, strict=True):
            if isinstance(outcome, ExecutableUnit):
                units[criterion.id] = outcome
            elif isinstance(outcome, IntegrityError | PolicyViolationError):
                contained.append(self._contain_validation_failure(criterion.id, outcome))
            elif isinstance(outcome, NotFoundError):
                raise AttemptAbortedError("object_not_found", str(outcome)) from outcome
            elif isinstance(outcome, TransientInfrastructureError | ThrottledError):
                raise AttemptAbortedError("object_store_unreachable", str(outcome)) from outcome
            elif isinstance(outcome, BaseException):
                raise outcome
        return units, contained

    async def _execute_all(
        self,
        attempt: AttemptContext,
        definition: ChallengeDefinition,
        units: dict[str, ExecutableUnit],
        tenant: TenantAccount,
        credential: DelegatedCredential,
    ) -> list[CriterionResult]:
        if not units:
            return []

        concurrency = min(len(definition.criteria), self.config.max_concurrency)
        semaphore = asyncio.Semaphore(concurrency)
        target = InspectionTarget.from_tenant(tenant)

        async def _run_one(criterion_id: str, unit: ExecutableUnit) -> CriterionResult:
            async with semaphore:
                return await self.executor.run(
                    unit,
                    tenant.participant_id,
                    target,
                    credential,
                    definition.unit_timeout_seconds,
                    criterion_id=criterion_id,
                )

        tasks = {
            asyncio.create_task(_run_one(criterion_id, unit), name=f"check-unit:{criterion_id}"): criterion_id
            for criterion_id, unit in units.items()
        }
        remaining = max(0.0, self.config.attempt_deadline_seconds - attempt.elapsed())
        logger.info(
            f"Executing {len(tasks)} check unit(s) with concurrency {concurrency}, "
            f"{remaining:.0f}s until attempt deadline"
        )
        try:
            _, pending = await asyncio.wait(tasks, timeout=remaining)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if pending:
            logger.warning(f"Attempt deadline reached, cancelling {len(pending)} check unit(s)")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        results: list[CriterionResult] = []
        for task, criterion_id in tasks.items():
            if task in pending or task.cancelled():
                await metrics.counter(metrics.CHECK_UNIT_TIMEOUT)
                results.append(CriterionResult.failed(criterion_id, "timeout", limit=ATTEMPT_DEADLINE))
                continue
            error = task.exception()
            if error is None:
                results.append(task.result())
            elif isinstance(error, IntegrityError):
                results.append(self._contain_validation_failure(criterion_id, error))
            else:
                logger.error(f"Check unit for {criterion_id} failed in the engine: {error!r}")
                reason = error.reason if isinstance(error, AssessmentError) else "internal_error"
                results.append(CriterionResult.failed(criterion_id, reason))
        return results

    async def _persist(self, result) -> None:
        try:
            await self._registry_call(
                f"Persisting attempt {result.attempt_id}",
                self.result_sink.put_assessment_result,
                result,
            )
        except Exception as e:
            raise AttemptAbortedError("result_sink_unreachable", str(e)) from e

    async def _abort(self, attempt: AttemptContext, reason: str, message: str) -> AbortedAttempt:
        state_reached = attempt.state
        attempt.advance(AttemptState.ABORTED, reason)
        aborted = AbortedAttempt(
            attempt_id=attempt.ref.attempt_id,
            participant_id=attempt.ref.participant_id,
            challenge_id=attempt.ref.challenge_id,
            attempt_timestamp=attempt.ref.attempt_timestamp,
            state_reached=state_reached.value,
            reason=reason,
            message=redact(message)[:MAX_ABORT_MESSAGE_LENGTH],
        )
        try:
            await asyncio.to_thread(self.result_sink.put_aborted_attempt, aborted)
        except Exception as e:
            logger.error(f"Could not record aborted attempt {aborted.attempt_id}: {e}")
        await metrics.counter(metrics.ASSESSMENT_ABORTED)
        return aborted
