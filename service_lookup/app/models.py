"""
Typed payloads for every cached resource kind.

Upstream JSON arrives camelCase; every model accepts either the camelCase
alias or the snake_case field name and always dumps snake_case into the cache
tiers, so a payload read back from Redis or PostgreSQL validates against the
same model that parsed the upstream response.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LookupModel(BaseModel):
    """Base for payload models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Provenance(str, Enum):
    """Which tier answered a fetch."""
    VOLATILE = "volatile"
    DURABLE = "durable"
    UPSTREAM = "upstream"
    STALE_FALLBACK = "stale_fallback"


class MatchType(str, Enum):
    """Match-id filter on match type."""
    RANKED = "ranked"
    NORMAL = "normal"
    TOURNEY = "tourney"
    TUTORIAL = "tutorial"


# --- Identity ---

class StableIdentity(LookupModel):
    """An account's stable id plus the display identity it currently answers to."""
    stable_id: str
    display_name: str
    discriminator: str
    realm: str
    verified: bool = Field(False, description="Display identity confirmed upstream during this call")


class IdentityMapping(LookupModel):
    """Persisted display identity -> stable id row."""
    display_name: str
    discriminator: str
    realm: str
    stable_id: str
    last_verified: datetime


class IdentitySuggestion(LookupModel):
    """Autocomplete entry served from previously seen identities."""
    display_name: str
    discriminator: str
    stable_id: str
    profile_icon_id: Optional[int] = None


class UpstreamAccount(LookupModel):
    """account-v1 payload."""
    puuid: str
    game_name: Optional[str] = None
    tag_line: Optional[str] = None


# --- Profile ---

class SummonerPayload(LookupModel):
    """summoner-v4 payload as returned upstream."""
    puuid: str
    id: Optional[str] = None
    account_id: Optional[str] = None
    profile_icon_id: int = 0
    revision_date: int = 0
    summoner_level: int = 0


class Profile(LookupModel):
    """Player profile, stamped with the display identity it was fetched under."""
    stable_id: str
    summoner_id: Optional[str] = None
    account_id: Optional[str] = None
    display_name: str
    discriminator: str
    realm: str
    profile_icon_id: int = 0
    summoner_level: int = 0
    revision_date: int = 0

    @classmethod
    def from_summoner(cls, summoner: SummonerPayload, identity: StableIdentity) -> "Profile":
        return cls(
            stable_id=summoner.puuid or identity.stable_id,
            summoner_id=summoner.id,
            account_id=summoner.account_id,
            display_name=identity.display_name,
            discriminator=identity.discriminator,
            realm=identity.realm,
            profile_icon_id=summoner.profile_icon_id,
            summoner_level=summoner.summoner_level,
            revision_date=summoner.revision_date,
        )


# --- Ranked ---

class MiniSeries(LookupModel):
    losses: int
    progress: str
    target: int
    wins: int


class RankedEntry(LookupModel):
    league_id: Optional[str] = None
    queue_type: str
    tier: Optional[str] = None
    rank: Optional[str] = None
    league_points: int = 0
    wins: int = 0
    losses: int = 0
    hot_streak: bool = False
    veteran: bool = False
    fresh_blood: bool = False
    inactive: bool = False
    mini_series: Optional[MiniSeries] = None


# --- Mastery ---

class MasteryEntry(LookupModel):
    champion_id: int
    champion_level: int
    champion_points: int
    last_play_time: int = 0
    champion_points_since_last_level: int = 0
    champion_points_until_next_level: int = 0
    chest_granted: Optional[bool] = None
    tokens_earned: Optional[int] = None


# --- Matches ---

class MatchIdFilters(LookupModel):
    """Filters accepted by the match-id listing."""
    queue: Optional[int] = None
    type: Optional[MatchType] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None


class MatchIdPage(LookupModel):
    items: List[str] = Field(default_factory=list)
    next_cursor: Optional[int] = None


class MatchMetadata(LookupModel):
    match_id: str
    data_version: Optional[str] = None
    participants: List[str] = Field(default_factory=list)


class MatchDetail(LookupModel):
    """match-v5 payload; ``info`` is kept opaque for the renderers."""
    metadata: MatchMetadata
    info: Dict[str, Any] = Field(default_factory=dict)

    @property
    def match_id(self) -> str:
        return self.metadata.match_id


# --- Live game ---

class BannedChampion(LookupModel):
    pick_turn: int
    champion_id: int
    team_id: int


class Perks(LookupModel):
    perk_ids: List[int] = Field(default_factory=list)
    perk_style: int = 0
    perk_sub_style: int = 0


class LiveParticipant(LookupModel):
    puuid: Optional[str] = None
    champion_id: int
    team_id: int
    spell1_id: int = Field(0, alias="spell1Id")
    spell2_id: int = Field(0, alias="spell2Id")
    profile_icon_id: int = 0
    bot: bool = False
    riot_id: Optional[str] = None
    summoner_id: Optional[str] = None
    perks: Optional[Perks] = None


class LiveGameSnapshot(LookupModel):
    game_id: int
    game_type: str
    game_start_time: int
    map_id: int
    game_length: int
    platform_id: str
    game_mode: str
    game_queue_config_id: Optional[int] = None
    banned_champions: List[BannedChampion] = Field(default_factory=list)
    participants: List[LiveParticipant] = Field(default_factory=list)


# --- Aggregates ---

class PlayerOverview(LookupModel):
    """Everything the profile page needs for one player, fetched concurrently."""
    identity: StableIdentity
    profile: Profile
    ranked: Optional[List[RankedEntry]] = None
    mastery: Optional[List[MasteryEntry]] = None
    recent_matches: Optional[MatchIdPage] = None


# --- HTTP surface ---

class PlayerRef(LookupModel):
    stable_id: str
    realm: str


class BulkRankedRequest(LookupModel):
    players: List[PlayerRef] = Field(default_factory=list, max_length=100)


class BulkRankedItem(LookupModel):
    """Ranked standings for one player of a bulk request; ``entries`` is None when the lookup failed."""
    stable_id: str
    realm: str
    entries: Optional[List[RankedEntry]] = None


class LiveGameResponse(LookupModel):
    in_game: bool
    game: Optional[LiveGameSnapshot] = None
