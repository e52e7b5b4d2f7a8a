"""
Match-id pages: a pure pass-through to upstream, never cached.
"""

from typing import Optional

from shared.errors import ValidationError
from shared.metrics import MetricsCollector

from ..models import MatchIdFilters, MatchIdPage, Provenance
from ..upstream.client import RiotApiClient
from ..upstream.routing import normalize_realm

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class MatchIdPager:
    """Cursor pagination over a player's match ids.

    The cursor is the upstream ``start`` offset. A full page advertises the
    next cursor; a short page is the last one.
    """

    def __init__(self, client: RiotApiClient, metrics: Optional[MetricsCollector] = None):
        self.client = client
        self.metrics = metrics

    async def get_page(
        self,
        stable_id: str,
        realm: str,
        filters: Optional[MatchIdFilters] = None,
        cursor: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> MatchIdPage:
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}",
                details={"page_size": page_size},
            )
        if cursor < 0:
            raise ValidationError("cursor must not be negative", details={"cursor": cursor})

        items = await self.client.get_match_ids(
            stable_id,
            normalize_realm(realm),
            filters=filters,
            start=cursor,
            count=page_size,
        )
        if self.metrics:
            self.metrics.record_lookup("match_ids", Provenance.UPSTREAM.value)

        next_cursor = cursor + page_size if len(items) >= page_size else None
        return MatchIdPage(items=items[:page_size], next_cursor=next_cursor)
