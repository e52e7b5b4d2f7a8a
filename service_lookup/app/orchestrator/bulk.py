"""
Fan-out of one request into independent per-entity lookups.
"""

import asyncio
from typing import Dict, Generic, Hashable, Iterable, Optional, TypeVar

from shared.logging import get_logger

from .base import ResourceCacheOrchestrator

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class BulkFetchCoordinator(Generic[K, T]):
    """Runs one orchestrator fetch per key and isolates their failures.

    ``fetch_many`` never fails as a whole: an entity whose lookup raised maps
    to None. Duplicate keys are fetched once. Nothing is retried.
    """

    def __init__(self, orchestrator: ResourceCacheOrchestrator, max_concurrency: int = 8):
        self.orchestrator = orchestrator
        self.max_concurrency = max_concurrency
        self.logger = get_logger(f"lookup.bulk.{orchestrator.kind.name}")

    async def fetch_many(self, keys: Iterable[K]) -> Dict[K, Optional[T]]:
        unique_keys = list(dict.fromkeys(keys))
        if not unique_keys:
            return {}

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch_one(key: K):
            async with semaphore:
                return await self.orchestrator.fetch(key)

        results = await asyncio.gather(
            *(fetch_one(key) for key in unique_keys),
            return_exceptions=True
        )

        settled: Dict[K, Optional[T]] = {}
        failures = 0
        for key, result in zip(unique_keys, results):
            if isinstance(result, BaseException):
                failures += 1
                self.logger.warning(
                    "Bulk entity lookup failed",
                    key=str(key),
                    error_type=type(result).__name__,
                    error=str(result),
                )
                settled[key] = None
            else:
                settled[key] = result.payload

        self.logger.debug("Bulk lookup settled", requested=len(unique_keys), failed=failures)
        return settled
