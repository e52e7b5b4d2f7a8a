"""
Lookup service for RiftRadar.
"""

from typing import Dict, List, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.metrics import MetricsCollector

from .lookup import DEFAULT_SEARCH_LIMIT, Lookup, build_lookup
from .models import (
    BulkRankedItem,
    BulkRankedRequest,
    IdentitySuggestion,
    LiveGameResponse,
    MasteryEntry,
    MatchDetail,
    MatchIdFilters,
    MatchIdPage,
    MatchType,
    PlayerOverview,
    Profile,
    RankedEntry,
)
from .orchestrator.kinds import PlayerKey
from .orchestrator.pager import DEFAULT_PAGE_SIZE


class LookupService(BaseService):
    """Lookup service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        lookup: Optional[Lookup] = None
    ):
        super().__init__("lookup", 8020, config, metrics)

        self.lookup = lookup or build_lookup(self.config, self.metrics)

        self._setup_lookup_routes()

    async def on_startup(self):
        await self.lookup.start()

    async def on_shutdown(self):
        await self.lookup.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        return await self.lookup.check_dependencies()

    def _setup_lookup_routes(self):
        """Set up lookup routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "lookup",
                "message": "RiftRadar - Lookup Service",
                "version": "1.0.0",
                "capabilities": ["identity", "profile", "ranked", "mastery", "matches", "live_game", "search"]
            }

        @self.app.get("/api/v1/{realm}/riot-id/{display_name}/{discriminator}/profile", response_model=Profile)
        async def get_profile(realm: str, display_name: str, discriminator: str):
            """Resolve a Riot ID and return the player's profile."""
            return await self.lookup.resolve_and_get_profile(display_name, discriminator, realm)

        @self.app.get("/api/v1/{realm}/riot-id/{display_name}/{discriminator}/overview", response_model=PlayerOverview)
        async def get_overview(realm: str, display_name: str, discriminator: str):
            """Profile, ranked, mastery and recent matches in one call."""
            return await self.lookup.get_player_overview(display_name, discriminator, realm)

        @self.app.get("/api/v1/{realm}/players/{stable_id}/ranked", response_model=List[RankedEntry])
        async def get_ranked(realm: str, stable_id: str):
            return await self.lookup.get_ranked_standings(stable_id, realm)

        @self.app.post("/api/v1/ranked/bulk", response_model=List[BulkRankedItem])
        async def get_bulk_ranked(request: BulkRankedRequest):
            """Ranked standings for many players; failed players carry null entries."""
            keys = [PlayerKey(player.stable_id, player.realm) for player in request.players]
            results = await self.lookup.get_bulk_ranked_standings(keys)
            return [
                BulkRankedItem(stable_id=key.stable_id, realm=key.realm, entries=entries)
                for key, entries in results.items()
            ]

        @self.app.get("/api/v1/{realm}/players/{stable_id}/mastery", response_model=List[MasteryEntry])
        async def get_mastery(realm: str, stable_id: str):
            return await self.lookup.get_champion_mastery(stable_id, realm)

        @self.app.get("/api/v1/{realm}/players/{stable_id}/matches", response_model=MatchIdPage)
        async def get_match_ids(
            realm: str,
            stable_id: str,
            cursor: int = Query(0, description="Offset of the first match id"),
            page_size: int = Query(DEFAULT_PAGE_SIZE, description="Match ids per page (1-100)"),
            queue: Optional[int] = Query(None, description="Queue id filter"),
            type: Optional[MatchType] = Query(None, description="Match type filter"),
            start_time: Optional[int] = Query(None, description="Epoch seconds lower bound"),
            end_time: Optional[int] = Query(None, description="Epoch seconds upper bound")
        ):
            """One page of a player's match ids, newest first."""
            filters = MatchIdFilters(queue=queue, type=type, start_time=start_time, end_time=end_time)
            return await self.lookup.get_match_id_page(stable_id, realm, filters, cursor, page_size)

        @self.app.get("/api/v1/{realm}/matches/{match_id}", response_model=MatchDetail)
        async def get_match(realm: str, match_id: str):
            return await self.lookup.get_match_detail(match_id, realm)

        @self.app.get("/api/v1/{realm}/players/{stable_id}/live-game", response_model=LiveGameResponse)
        async def get_live_game(realm: str, stable_id: str):
            snapshot = await self.lookup.get_live_game_snapshot(stable_id, realm)
            return LiveGameResponse(in_game=snapshot is not None, game=snapshot)

        @self.app.get("/api/v1/{realm}/search", response_model=List[IdentitySuggestion])
        async def search(
            realm: str,
            q: str = Query(..., description="Display name prefix"),
            limit: int = Query(DEFAULT_SEARCH_LIMIT, description="Maximum suggestions (1-10)")
        ):
            """Autocomplete over previously seen Riot IDs."""
            return await self.lookup.search_known_identities(q, realm, limit)


def create_app(
    config: Optional[ServiceConfig] = None,
    metrics: Optional[MetricsCollector] = None,
    lookup: Optional[Lookup] = None
):
    """Create lookup service application."""
    service = LookupService(config, metrics, lookup)
    return service.app


if __name__ == "__main__":
    service = LookupService()
    service.run()
