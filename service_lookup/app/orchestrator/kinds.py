"""
Resource kind definitions: keys, TTLs and freshness checks per kind.
"""

from datetime import timedelta
from typing import List, NamedTuple, Optional

from pydantic import TypeAdapter

from ..identity.resolver import same_display_identity
from ..models import LiveGameSnapshot, MasteryEntry, MatchDetail, Profile, RankedEntry, StableIdentity
from ..persistence.postgres import PostgreSQLPersistence
from ..upstream.client import RiotApiClient
from ..upstream.routing import match_region, normalize_realm
from .base import DurableBinding, ResourceKind

PROFILE_VOLATILE_TTL = 5 * 60
PROFILE_DURABLE_TTL = timedelta(minutes=30)
RANKED_VOLATILE_TTL = 10 * 60
MASTERY_VOLATILE_TTL = 30 * 60
MATCH_VOLATILE_TTL = 60 * 60
MATCH_DURABLE_TTL = timedelta(days=7)
LIVE_GAME_TTL = 60
NOT_IN_GAME_TTL = 30


class PlayerKey(NamedTuple):
    """Scope key for per-player resources."""
    stable_id: str
    realm: str


class ProfileKey(NamedTuple):
    """A player plus the verified display identity the profile must carry."""
    stable_id: str
    realm: str
    display_name: str
    discriminator: str

    @classmethod
    def for_identity(cls, identity: StableIdentity) -> "ProfileKey":
        return cls(identity.stable_id, normalize_realm(identity.realm), identity.display_name, identity.discriminator)

    def identity(self) -> StableIdentity:
        return StableIdentity(
            stable_id=self.stable_id,
            display_name=self.display_name,
            discriminator=self.discriminator,
            realm=self.realm,
        )


class MatchKey(NamedTuple):
    match_id: str
    realm: str


def profile_is_fresh(key: ProfileKey, profile: Profile) -> bool:
    """A profile cached under a previous name is stale whatever its age."""
    return same_display_identity(key.display_name, key.discriminator, profile.display_name, profile.discriminator)


def profile_kind(client: RiotApiClient, store: PostgreSQLPersistence) -> ResourceKind:
    async def fetch(key: ProfileKey) -> Profile:
        summoner = await client.get_summoner_by_puuid(key.stable_id, key.realm)
        return Profile.from_summoner(summoner, key.identity())

    async def load(key: ProfileKey):
        return await store.get_profile(key.stable_id)

    async def save(key: ProfileKey, payload, last_fetched):
        await store.upsert_profile(key.stable_id, key.realm, payload, last_fetched)

    return ResourceKind(
        name="profile",
        schema=TypeAdapter(Profile),
        volatile_key=lambda key: f"player:profile:{key.realm}:{key.stable_id}",
        fetch_upstream=fetch,
        volatile_ttl=lambda payload: PROFILE_VOLATILE_TTL,
        durable=DurableBinding(load=load, save=save, ttl=PROFILE_DURABLE_TTL),
        is_fresh=profile_is_fresh,
    )


def ranked_kind(client: RiotApiClient) -> ResourceKind:
    async def fetch(key: PlayerKey) -> List[RankedEntry]:
        return await client.get_league_entries(key.stable_id, key.realm)

    return ResourceKind(
        name="ranked",
        schema=TypeAdapter(List[RankedEntry]),
        volatile_key=lambda key: f"player:ranked:{key.realm}:{key.stable_id}",
        fetch_upstream=fetch,
        volatile_ttl=lambda payload: RANKED_VOLATILE_TTL,
    )


def mastery_kind(client: RiotApiClient) -> ResourceKind:
    async def fetch(key: PlayerKey) -> List[MasteryEntry]:
        return await client.get_champion_masteries(key.stable_id, key.realm)

    return ResourceKind(
        name="mastery",
        schema=TypeAdapter(List[MasteryEntry]),
        volatile_key=lambda key: f"player:mastery:{key.realm}:{key.stable_id}",
        fetch_upstream=fetch,
        volatile_ttl=lambda payload: MASTERY_VOLATILE_TTL,
    )


def match_detail_kind(client: RiotApiClient, store: PostgreSQLPersistence) -> ResourceKind:
    async def fetch(key: MatchKey) -> MatchDetail:
        return await client.get_match(key.match_id, key.realm)

    async def load(key: MatchKey):
        return await store.get_match_detail(key.match_id)

    async def save(key: MatchKey, payload, last_fetched):
        await store.upsert_match_detail(key.match_id, key.realm, payload, last_fetched)

    return ResourceKind(
        name="match_detail",
        schema=TypeAdapter(MatchDetail),
        volatile_key=lambda key: f"match:details:{match_region(key.realm)}:{key.match_id}",
        fetch_upstream=fetch,
        volatile_ttl=lambda payload: MATCH_VOLATILE_TTL,
        durable=DurableBinding(load=load, save=save, ttl=MATCH_DURABLE_TTL),
    )


def live_game_kind(client: RiotApiClient) -> ResourceKind:
    async def fetch(key: PlayerKey) -> Optional[LiveGameSnapshot]:
        return await client.get_active_game(key.stable_id, key.realm)

    return ResourceKind(
        name="live_game",
        schema=TypeAdapter(Optional[LiveGameSnapshot]),
        volatile_key=lambda key: f"spectator:currentgame:{key.realm}:{key.stable_id}",
        fetch_upstream=fetch,
        volatile_ttl=lambda payload: LIVE_GAME_TTL if payload is not None else NOT_IN_GAME_TTL,
    )
