"""Sandboxed executor for check units.

Every invocation gets its own spawned process, so a unit that crashes, hangs
or exhausts its limits can only ever fail its own criterion.
"""

import asyncio
import logging
import multiprocessing
import os
import signal
import time
from typing import Any

from assessor.common import metrics
from assessor.config import SandboxConfig
from assessor.credentials.broker import DelegatedCredential
from assessor.errors import CredentialRevokedError
from assessor.loader.loader import ExecutableUnit
from assessor.models.domain import CriterionResult, InspectionTarget
from assessor.sandbox.worker import run_unit
from assessor.scoring.sanitize import ERROR_KEY, redact_details, sanitize_details

logger = logging.getLogger(__name__)

TIMEOUT = "timeout"
RESOURCE_EXCEEDED = "resource_exceeded"
UNIT_ERROR = "unit_error"
CREDENTIAL_REVOKED = "credential_revoked"

# Keeps boto3 inside the unit process from reading host configuration
_ISOLATED_AWS_ENV = {
    "AWS_CONFIG_FILE": os.devnull,
    "AWS_SHARED_CREDENTIALS_FILE": os.devnull,
    "AWS_EC2_METADATA_DISABLED": "true",
}
_JOIN_TIMEOUT_SECONDS = 5


class SandboxedExecutor:
    """Runs check units in isolated, resource-bounded processes."""

    def __init__(self, config: SandboxConfig, mp_context=None):
        self.config = config
        self._mp = mp_context or multiprocessing.get_context("spawn")

    async def run(
        self,
        unit: ExecutableUnit,
        participant_id: str,
        target: InspectionTarget,
        credential: DelegatedCredential,
        timeout: float | None = None,
        *,
        criterion_id: str,
    ) -> CriterionResult:
        """Evaluate one unit against one target.

        Unit faults, timeouts and resource exhaustion are contained and
        returned as not-implemented results with a classified ``details.error``.

        Raises:
            IntegrityError: If the unit's content no longer matches its hash
        """
        unit.verify_integrity()
        effective_timeout = self.config.effective_timeout(timeout)

        try:
            credentials = credential.export()
        except CredentialRevokedError as e:
            logger.warning(f"Not running {unit.unit_ref}: {e}")
            return CriterionResult.failed(criterion_id, CREDENTIAL_REVOKED)

        payload = self._payload(unit, participant_id, target, credentials)
        secrets = [value for key, value in credentials.items() if key != "region_name"]
        del credentials

        started = time.monotonic()
        message = await self._execute(payload, effective_timeout, unit.unit_ref)
        elapsed = time.monotonic() - started

        if message.get("status") == "ok":
            details = dict(message.get("details") or {})
            if ERROR_KEY in details:
                details["reported_error"] = details.pop(ERROR_KEY)
            logger.info(
                f"Check unit {unit.unit_ref} finished in {elapsed:.2f}s: "
                f"implemented={message['implemented']}"
            )
            return CriterionResult(
                criterion_id=criterion_id,
                implemented=bool(message["implemented"]),
                details=self._clean_details(details, secrets),
            )

        reason = message.get("error", UNIT_ERROR)
        logger.warning(f"Check unit {unit.unit_ref} failed after {elapsed:.2f}s: {reason}")
        extra: dict[str, Any] = {}
        if message.get("message"):
            extra["message"] = message["message"]
        if reason == TIMEOUT:
            extra["timeout_seconds"] = effective_timeout
            await metrics.counter(metrics.CHECK_UNIT_TIMEOUT)
        result = CriterionResult.failed(criterion_id, reason, **extra)
        return result.model_copy(
            update={"details": self._clean_details(result.details, secrets)}
        )

    def _clean_details(self, details: dict[str, Any], secrets: list[str]) -> dict[str, Any]:
        """Bound untrusted details and mask any credential material in them."""
        return redact_details(sanitize_details(details, self.config.max_details_bytes), secrets)

    def _payload(
        self,
        unit: ExecutableUnit,
        participant_id: str,
        target: InspectionTarget,
        credentials: dict[str, str],
    ) -> dict[str, Any]:
        env = {k: os.environ[k] for k in self.config.env_allowlist if k in os.environ}
        env.update(_ISOLATED_AWS_ENV)
        return {
            "unit_ref": unit.unit_ref,
            "unit_format": unit.unit_format.value,
            "source": unit.source,
            "target": {**target.model_dump(), "participant_id": participant_id},
            "credentials": credentials,
            "allowed_modules": list(self.config.allowed_modules),
            "allowed_services": list(self.config.allowed_services),
            "inspection_endpoint_url": self.config.inspection_endpoint_url,
            "api_timeout_seconds": self.config.api_timeout_seconds,
            "memory_limit_mb": self.config.memory_limit_mb,
            "cpu_limit_seconds": self.config.cpu_limit_seconds,
            "env": env,
        }

    async def _execute(self, payload: dict[str, Any], timeout: float, unit_ref: str) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        parent_conn, child_conn = self._mp.Pipe(duplex=False)
        process = self._mp.Process(
            target=run_unit, args=(payload, child_conn), name=f"check-unit:{unit_ref}", daemon=True
        )
        started = False
        try:
            process.start()
            started = True
            child_conn.close()

            ready = loop.create_future()
            fd = parent_conn.fileno()
            loop.add_reader(fd, _mark_ready, ready)
            try:
                await asyncio.wait_for(ready, timeout)
            except TimeoutError:
                logger.warning(f"Check unit {unit_ref} exceeded {timeout}s, terminating")
                return {"status": "error", "error": TIMEOUT}
            finally:
                loop.remove_reader(fd)

            try:
                message = parent_conn.recv()
            except EOFError:
                await asyncio.to_thread(process.join, _JOIN_TIMEOUT_SECONDS)
                return _classify_exit(process.exitcode)
            if not isinstance(message, dict):
                return {"status": "error", "error": "invalid_result"}
            return message
        finally:
            if started:
                if process.is_alive():
                    process.kill()
                await asyncio.to_thread(process.join, _JOIN_TIMEOUT_SECONDS)
            else:
                child_conn.close()
            parent_conn.close()


def _mark_ready(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


def _classify_exit(exitcode: int | None) -> dict[str, Any]:
    """Explain a unit process that died without reporting."""
    if exitcode is not None and exitcode in (-signal.SIGKILL, -signal.SIGXCPU):
        return {
            "status": "error",
            "error": RESOURCE_EXCEEDED,
            "message": f"unit process killed by signal {-exitcode}",
        }
    return {"status": "error", "error": UNIT_ERROR, "message": f"unit process exited with code {exitcode}"}
