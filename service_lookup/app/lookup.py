"""
Lookup facade handed to request handlers.

Holds one explicitly constructed orchestrator per resource kind plus the
identity resolver, the match-id pager and the bulk coordinator. Nothing here
is a module-level singleton; ``build_lookup`` wires a fresh graph from config.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

from shared.circuit_breaker import CircuitBreaker
from shared.config import BaseConfig
from shared.errors import LocalStoreError, UpstreamError, ValidationError
from shared.logging import get_logger, set_realm_context
from shared.metrics import MetricsCollector

from .cache.redis_cache import RedisCache
from .identity.resolver import IdentityResolver
from .models import (
    IdentitySuggestion,
    LiveGameSnapshot,
    MasteryEntry,
    MatchDetail,
    MatchIdFilters,
    MatchIdPage,
    PlayerOverview,
    Profile,
    RankedEntry,
)
from .orchestrator.base import ResourceCacheOrchestrator
from .orchestrator.bulk import BulkFetchCoordinator
from .orchestrator.kinds import (
    MatchKey,
    PlayerKey,
    ProfileKey,
    live_game_kind,
    mastery_kind,
    match_detail_kind,
    profile_kind,
    ranked_kind,
)
from .orchestrator.pager import DEFAULT_PAGE_SIZE, MatchIdPager
from .persistence.postgres import PostgreSQLPersistence
from .ratelimit.sliding_window import SlidingWindowRateLimiter, default_windows
from .upstream.client import RiotApiClient
from .upstream.routing import normalize_realm

DEFAULT_SEARCH_LIMIT = 5
MAX_SEARCH_LIMIT = 10
OVERVIEW_PAGE_SIZE = DEFAULT_PAGE_SIZE


class Lookup:
    """Entry point for every lookup operation."""

    def __init__(
        self,
        resolver: IdentityResolver,
        profiles: ResourceCacheOrchestrator,
        ranked: ResourceCacheOrchestrator,
        mastery: ResourceCacheOrchestrator,
        matches: ResourceCacheOrchestrator,
        live_games: ResourceCacheOrchestrator,
        pager: MatchIdPager,
        store: PostgreSQLPersistence,
        bulk_ranked: Optional[BulkFetchCoordinator] = None,
        metrics: Optional[MetricsCollector] = None,
        components: Optional[List] = None,
    ):
        self.resolver = resolver
        self.profiles = profiles
        self.ranked = ranked
        self.mastery = mastery
        self.matches = matches
        self.live_games = live_games
        self.pager = pager
        self.store = store
        self.bulk_ranked = bulk_ranked or BulkFetchCoordinator(ranked)
        self.metrics = metrics
        self.logger = get_logger("lookup.facade")
        # Owned resources, started in order and stopped in reverse
        self._components = list(components or [])

    async def start(self):
        for component in self._components:
            await component.start()

    async def stop(self):
        for component in reversed(self._components):
            await component.stop()

    async def check_dependencies(self) -> Dict[str, str]:
        """Health of the cache tiers."""
        redis_ok = await self.profiles.volatile.health_check()
        postgres_ok = await self.store.health_check()
        return {
            "redis": "ok" if redis_ok else "error",
            "postgres": "ok" if postgres_ok else "error",
        }

    async def resolve_and_get_profile(self, display_name: str, discriminator: str, realm: str) -> Profile:
        """Resolve a display identity and return its profile."""
        set_realm_context(normalize_realm(realm))
        identity = await self.resolver.resolve(display_name, discriminator, realm)
        result = await self.profiles.fetch(ProfileKey.for_identity(identity))
        return result.payload

    async def get_ranked_standings(self, stable_id: str, realm: str) -> List[RankedEntry]:
        result = await self.ranked.fetch(PlayerKey(stable_id, normalize_realm(realm)))
        return result.payload

    async def get_bulk_ranked_standings(self, keys: Iterable[PlayerKey]) -> Dict[PlayerKey, Optional[List[RankedEntry]]]:
        """Ranked standings for many players; a player whose lookup failed maps to None."""
        normalized = [PlayerKey(key.stable_id, normalize_realm(key.realm)) for key in keys]
        return await self.bulk_ranked.fetch_many(normalized)

    async def get_champion_mastery(self, stable_id: str, realm: str) -> List[MasteryEntry]:
        result = await self.mastery.fetch(PlayerKey(stable_id, normalize_realm(realm)))
        return result.payload

    async def get_match_id_page(
        self,
        stable_id: str,
        realm: str,
        filters: Optional[MatchIdFilters] = None,
        cursor: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> MatchIdPage:
        return await self.pager.get_page(stable_id, normalize_realm(realm), filters, cursor, page_size)

    async def get_match_detail(self, match_id: str, realm: str) -> MatchDetail:
        result = await self.matches.fetch(MatchKey(match_id, normalize_realm(realm)))
        return result.payload

    async def get_live_game_snapshot(self, stable_id: str, realm: str) -> Optional[LiveGameSnapshot]:
        """Current game, or None when the player is not in one."""
        result = await self.live_games.fetch(PlayerKey(stable_id, normalize_realm(realm)))
        return result.payload

    async def search_known_identities(
        self,
        partial_name: str,
        realm: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> List[IdentitySuggestion]:
        """Autocomplete over identities seen before. Never calls upstream."""
        realm = normalize_realm(realm)
        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise ValidationError(
                f"limit must be between 1 and {MAX_SEARCH_LIMIT}",
                details={"limit": limit},
            )
        partial_name = partial_name.strip()
        if not partial_name:
            return []

        try:
            return await self.store.search_mappings(partial_name, realm, limit)
        except LocalStoreError as e:
            self.logger.error("Identity search failed", error=e.message)
            if self.metrics:
                self.metrics.record_tier_error(e.tier, "search_mappings")
            return []

    async def get_player_overview(self, display_name: str, discriminator: str, realm: str) -> PlayerOverview:
        """Profile plus ranked, mastery and the first match-id page, fetched concurrently.

        A profile failure propagates; any other section that fails is None.
        """
        set_realm_context(normalize_realm(realm))
        identity = await self.resolver.resolve(display_name, discriminator, realm)
        player = PlayerKey(identity.stable_id, identity.realm)

        profile, ranked, mastery, recent = await asyncio.gather(
            self.profiles.fetch(ProfileKey.for_identity(identity)),
            self.ranked.fetch(player),
            self.mastery.fetch(player),
            self.pager.get_page(identity.stable_id, identity.realm, page_size=OVERVIEW_PAGE_SIZE),
            return_exceptions=True,
        )
        if isinstance(profile, BaseException):
            raise profile

        return PlayerOverview(
            identity=identity,
            profile=profile.payload,
            ranked=self._section("ranked", ranked, lambda result: result.payload),
            mastery=self._section("mastery", mastery, lambda result: result.payload),
            recent_matches=self._section("recent_matches", recent, lambda page: page),
        )

    def _section(self, name: str, outcome, unwrap):
        if isinstance(outcome, BaseException):
            self.logger.warning("Overview section unavailable", section=name, error=str(outcome))
            return None
        return unwrap(outcome)


def build_lookup(config: BaseConfig, metrics: Optional[MetricsCollector] = None) -> Lookup:
    """Wire the lookup graph from configuration."""
    cache = RedisCache.from_url(config.redis_url)
    store = PostgreSQLPersistence(
        config.postgres_dsn,
        min_size=config.postgres_min_pool,
        max_size=config.postgres_max_pool,
    )
    client = RiotApiClient(
        api_key=config.riot_api_key,
        timeout=config.upstream_timeout_seconds,
        # The call budget shares the volatile tier's connection pool
        rate_limiter=SlidingWindowRateLimiter(
            cache.redis,
            default_windows(config.rate_limit_per_second, config.rate_limit_per_two_minutes),
        ),
        circuit_breaker=CircuitBreaker(
            failure_threshold=config.circuit_failure_threshold,
            recovery_timeout=config.circuit_recovery_seconds,
            failure_exceptions=(UpstreamError,),
            name="riot_api",
        ),
        metrics=metrics,
    )

    ranked = ResourceCacheOrchestrator(ranked_kind(client), cache, metrics)
    return Lookup(
        resolver=IdentityResolver(store, client, metrics),
        profiles=ResourceCacheOrchestrator(profile_kind(client, store), cache, metrics),
        ranked=ranked,
        mastery=ResourceCacheOrchestrator(mastery_kind(client), cache, metrics),
        matches=ResourceCacheOrchestrator(match_detail_kind(client, store), cache, metrics),
        live_games=ResourceCacheOrchestrator(live_game_kind(client), cache, metrics),
        pager=MatchIdPager(client, metrics),
        store=store,
        bulk_ranked=BulkFetchCoordinator(ranked, config.bulk_max_concurrency),
        metrics=metrics,
        components=[cache, store, client],
    )
