"""
Shared fixtures for Lookup service tests.
"""

import pytest

from shared.metrics import MetricsCollector
from service_lookup.app.identity.resolver import IdentityResolver
from service_lookup.app.lookup import Lookup
from service_lookup.app.orchestrator.base import ResourceCacheOrchestrator
from service_lookup.app.orchestrator.bulk import BulkFetchCoordinator
from service_lookup.app.orchestrator.kinds import (
    live_game_kind,
    mastery_kind,
    match_detail_kind,
    profile_kind,
    ranked_kind,
)
from service_lookup.app.orchestrator.pager import MatchIdPager

from .fakes import FakeClock, FakeDurableStore, FakeRiotApi, FakeVolatileTier


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def volatile(clock):
    return FakeVolatileTier(clock)


@pytest.fixture
def store():
    return FakeDurableStore()


@pytest.fixture
def upstream():
    api = FakeRiotApi()
    api.add_account("puuid-faker", "Faker", "KR1", profile_icon_id=6)
    return api


@pytest.fixture
def metrics():
    return MetricsCollector("lookup")


@pytest.fixture
def lookup(clock, volatile, store, upstream, metrics):
    """Lookup facade wired to in-memory tiers and a scripted upstream."""
    ranked = ResourceCacheOrchestrator(ranked_kind(upstream), volatile, metrics, clock)
    return Lookup(
        resolver=IdentityResolver(store, upstream, metrics, clock),
        profiles=ResourceCacheOrchestrator(profile_kind(upstream, store), volatile, metrics, clock),
        ranked=ranked,
        mastery=ResourceCacheOrchestrator(mastery_kind(upstream), volatile, metrics, clock),
        matches=ResourceCacheOrchestrator(match_detail_kind(upstream, store), volatile, metrics, clock),
        live_games=ResourceCacheOrchestrator(live_game_kind(upstream), volatile, metrics, clock),
        pager=MatchIdPager(upstream, metrics),
        store=store,
        bulk_ranked=BulkFetchCoordinator(ranked, max_concurrency=4),
        metrics=metrics,
    )
