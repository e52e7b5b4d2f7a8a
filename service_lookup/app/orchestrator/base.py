"""
Generic tiered lookup: volatile tier, then durable store, then upstream.

One ``ResourceCacheOrchestrator`` is built per resource kind. A kind supplies
its key shape, TTLs, payload schema and an optional freshness check; the
algorithm is the same for all of them:

1. Volatile GET. A hit that passes the freshness check is returned. A stale
   hit is left in place and the lookup falls through.
2. Durable SELECT (kinds with a durable tier). A record younger than the
   durable TTL that passes the freshness check is written through to the
   volatile tier and returned.
3. Upstream. The result is upserted durably and written through to the
   volatile tier.
4. Upstream failure. Any durable record, however old, is returned as a stale
   fallback; without one the upstream error propagates.

Tier failures never fail a lookup: reads degrade to a miss and writes are
logged and dropped.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError as PydanticValidationError

from shared.errors import LocalStoreError, NotFoundError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..cache.redis_cache import RedisCache
from ..models import Provenance
from ..persistence.postgres import DurableRecord

K = TypeVar("K")
T = TypeVar("T")

_MISS = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEnvelope(BaseModel):
    """Tagged wrapper stored in the volatile tier."""
    kind: str
    cached_at: datetime
    payload: Any = None


@dataclass(frozen=True)
class DurableBinding(Generic[K]):
    """How a kind reads and writes its durable copy."""
    load: Callable[[K], Awaitable[Optional[DurableRecord]]]
    save: Callable[[K, Any, datetime], Awaitable[None]]
    ttl: timedelta


@dataclass(frozen=True)
class ResourceKind(Generic[K, T]):
    """Definition of one cached resource kind."""
    name: str
    schema: TypeAdapter
    volatile_key: Callable[[K], str]
    fetch_upstream: Callable[[K], Awaitable[T]]
    volatile_ttl: Callable[[T], int]
    durable: Optional[DurableBinding] = None
    is_fresh: Optional[Callable[[K, T], bool]] = None


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    payload: T
    provenance: Provenance


class ResourceCacheOrchestrator(Generic[K, T]):
    """Runs the tiered lookup for one resource kind."""

    def __init__(
        self,
        kind: ResourceKind,
        volatile: RedisCache,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.kind = kind
        self.volatile = volatile
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger(f"lookup.orchestrator.{kind.name}")

    async def fetch(self, key: K) -> FetchResult[T]:
        """Return the payload for ``key`` and the tier that answered."""
        cache_key = self.kind.volatile_key(key)

        payload = await self._read_volatile(cache_key, key)
        if payload is not _MISS:
            self.logger.debug("Volatile hit", kind=self.kind.name, cache_key=cache_key)
            return self._result(payload, Provenance.VOLATILE)

        if self.kind.durable is not None:
            payload = await self._read_durable(key, require_fresh=True)
            if payload is not _MISS:
                self.logger.debug("Durable hit", kind=self.kind.name, cache_key=cache_key)
                await asyncio.shield(self._write_volatile(cache_key, payload))
                return self._result(payload, Provenance.DURABLE)

        try:
            payload = await self.kind.fetch_upstream(key)
        except (NotFoundError, UpstreamError) as e:
            fallback = _MISS
            if self.kind.durable is not None:
                fallback = await self._read_durable(key, require_fresh=False)
            if fallback is _MISS:
                raise
            self.logger.warning(
                "Serving stale fallback",
                kind=self.kind.name,
                cache_key=cache_key,
                code=e.code,
                error=e.message,
            )
            return self._result(fallback, Provenance.STALE_FALLBACK)

        await asyncio.shield(self._write_through(key, cache_key, payload))
        return self._result(payload, Provenance.UPSTREAM)

    def _result(self, payload: T, provenance: Provenance) -> FetchResult[T]:
        if self.metrics:
            self.metrics.record_lookup(self.kind.name, provenance.value)
        return FetchResult(payload=payload, provenance=provenance)

    def _fresh(self, key: K, payload: T) -> bool:
        return self.kind.is_fresh is None or self.kind.is_fresh(key, payload)

    def _decode(self, raw: Any, source: str) -> Any:
        try:
            return self.kind.schema.validate_python(raw)
        except PydanticValidationError as e:
            self.logger.warning(
                "Discarding cached payload that failed validation",
                kind=self.kind.name,
                source=source,
                error=str(e),
            )
            return _MISS

    def _encode(self, payload: T) -> Any:
        return self.kind.schema.dump_python(payload, mode="json")

    # --- volatile tier ---

    async def _read_volatile(self, cache_key: str, key: K) -> Any:
        try:
            raw = await self.volatile.get_envelope(cache_key)
        except LocalStoreError as e:
            self._tier_error(e, "get")
            return _MISS

        if raw is None:
            return _MISS

        try:
            envelope = CacheEnvelope.model_validate(raw)
        except PydanticValidationError:
            self.logger.warning("Discarding malformed envelope", kind=self.kind.name, cache_key=cache_key)
            return _MISS
        if envelope.kind != self.kind.name:
            self.logger.warning(
                "Discarding envelope of another kind",
                kind=self.kind.name,
                found=envelope.kind,
                cache_key=cache_key,
            )
            return _MISS

        payload = self._decode(envelope.payload, "volatile")
        if payload is _MISS or not self._fresh(key, payload):
            return _MISS
        return payload

    async def _write_volatile(self, cache_key: str, payload: T) -> None:
        envelope = CacheEnvelope(kind=self.kind.name, cached_at=self.clock(), payload=self._encode(payload))
        try:
            await self.volatile.set_envelope(
                cache_key,
                envelope.model_dump(mode="json"),
                self.kind.volatile_ttl(payload),
            )
        except LocalStoreError as e:
            self._tier_error(e, "set")

    # --- durable tier ---

    async def _read_durable(self, key: K, require_fresh: bool) -> Any:
        try:
            record = await self.kind.durable.load(key)
        except LocalStoreError as e:
            self._tier_error(e, "load")
            return _MISS

        if record is None:
            return _MISS

        payload = self._decode(record.payload, "durable")
        if payload is _MISS or not require_fresh:
            return payload

        age = self.clock() - record.last_fetched
        if age >= self.kind.durable.ttl or not self._fresh(key, payload):
            return _MISS
        return payload

    async def _write_through(self, key: K, cache_key: str, payload: T) -> None:
        if self.kind.durable is not None:
            try:
                await self.kind.durable.save(key, self._encode(payload), self.clock())
            except LocalStoreError as e:
                self._tier_error(e, "save")
        await self._write_volatile(cache_key, payload)

    def _tier_error(self, error: LocalStoreError, operation: str) -> None:
        self.logger.error(
            "Cache tier failure absorbed",
            kind=self.kind.name,
            tier=error.tier,
            operation=operation,
            error=error.message,
        )
        if self.metrics:
            self.metrics.record_tier_error(error.tier, operation)
