"""Check unit loader.

Materializes the executable unit for one criterion of a challenge definition:
fetch by exact key, verify the recorded SHA-256, apply the safety policy and
cache the admitted unit. Concurrent loads of the same unit share one fetch.
"""

import asyncio
import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from assessor.common.retry import retry_async
from assessor.config import LoaderConfig
from assessor.errors import IntegrityError, NotFoundError, ThrottledError, TransientInfrastructureError
from assessor.loader.cache import ByteBudgetLRU
from assessor.loader.policy import SafetyPolicy
from assessor.models.domain import ChallengeDefinition
from assessor.models.enums import UnitFormat

logger = logging.getLogger(__name__)

CacheKey = tuple[str, int, str, str]


class ObjectStore(Protocol):
    """Read access to stored check unit content."""

    def get_object(self, location: str) -> bytes:
        """Fetch content by exact store:// address, raising NotFoundError if absent."""
        ...


@dataclass(frozen=True)
class ExecutableUnit:
    """A validated, read-only check unit ready for the sandbox."""

    definition_id: str
    definition_version: int
    unit_ref: str
    content_hash: str
    unit_format: UnitFormat
    source: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.source)

    @property
    def cache_key(self) -> CacheKey:
        return (self.definition_id, self.definition_version, self.unit_ref, self.content_hash)

    def verify_integrity(self) -> None:
        """Fail closed if the content no longer matches its recorded fingerprint.

        Raises:
            IntegrityError: On hash mismatch
        """
        actual = hashlib.sha256(self.source).hexdigest()
        if actual != self.content_hash:
            msg = f"Check unit {self.unit_ref} hash {actual} does not match recorded {self.content_hash}"
            raise IntegrityError(msg)


class CheckUnitLoader:
    """Loads check units for challenge definitions.

    The unit cache is the only state shared between concurrent attempts. It is
    created with the loader and discarded with it.
    """

    def __init__(
        self,
        store: ObjectStore,
        policy: SafetyPolicy,
        config: LoaderConfig,
        cache: ByteBudgetLRU | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.policy = policy
        self.config = config
        self.cache: ByteBudgetLRU[ExecutableUnit] = cache or ByteBudgetLRU(config.cache_max_bytes)
        self._inflight: dict[CacheKey, asyncio.Future] = {}
        self._sleep = sleep

    async def load(self, definition: ChallengeDefinition, unit_ref: str) -> ExecutableUnit:
        """Return the admitted executable unit for ``unit_ref``.

        Raises:
            NotFoundError: If the definition has no such unit or the object is missing
            IntegrityError: If the content hash does not match the definition
            PolicyViolationError: If the safety policy rejects the unit
            TransientInfrastructureError: If the object store stays unreachable
        """
        try:
            criterion = definition.criterion_for_unit(unit_ref)
        except KeyError:
            msg = f"Challenge {definition.id} v{definition.version} has no check unit {unit_ref}"
            raise NotFoundError(msg) from None

        key: CacheKey = (definition.id, definition.version, unit_ref, criterion.check_unit_sha256)

        while True:
            cached = self.cache.get(key)
            if cached is not None:
                try:
                    cached.verify_integrity()
                except IntegrityError:
                    logger.error(f"Cached check unit {unit_ref} failed integrity check, evicting")
                    self.cache.evict(key)
                    raise
                logger.debug(f"Check unit cache hit for {unit_ref}")
                return cached

            pending = self._inflight.get(key)
            if pending is None:
                return await self._populate(definition, unit_ref, key)

            await asyncio.wait([pending])
            if pending.cancelled():
                # Leader was cancelled; retry as a new leader
                continue
            unit, error = pending.result()
            if error is not None:
                raise error
            return unit

    async def _populate(
        self, definition: ChallengeDefinition, unit_ref: str, key: CacheKey
    ) -> ExecutableUnit:
        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            unit = await self._fetch_and_validate(definition, unit_ref, key[3])
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_result((None, e))
            raise
        else:
            self.cache.put(key, unit, unit.size)
            future.set_result((unit, None))
            return unit
        finally:
            self._inflight.pop(key, None)

    async def _fetch_and_validate(
        self, definition: ChallengeDefinition, unit_ref: str, expected_hash: str
    ) -> ExecutableUnit:
        location = definition.unit_location(unit_ref)

        async def _fetch() -> bytes:
            return await asyncio.to_thread(self.store.get_object, location)

        source = await retry_async(
            _fetch,
            retry_on=(TransientInfrastructureError, ThrottledError),
            max_attempts=self.config.fetch_max_attempts,
            base_delay=self.config.backoff_base_seconds,
            max_delay=self.config.backoff_max_seconds,
            description=f"Fetching {location}",
            sleep=self._sleep,
        )

        actual = hashlib.sha256(source).hexdigest()
        if actual != expected_hash:
            logger.error(f"Integrity check failed for {location}")
            msg = f"Check unit {unit_ref} hash {actual} does not match recorded {expected_hash}"
            raise IntegrityError(msg)

        unit_format = self.policy.validate(unit_ref, source)
        return ExecutableUnit(
            definition_id=definition.id,
            definition_version=definition.version,
            unit_ref=unit_ref,
            content_hash=expected_hash,
            unit_format=unit_format,
            source=source,
        )
