"""
Riot API client for the lookup service.

Every call is budgeted by the shared rate limiter, guarded by a circuit breaker
and bounded by an explicit timeout. Outcomes map onto the lookup error
taxonomy: 404 is NotFoundError (or an empty answer where the endpoint treats
absence as empty), 429 is RateLimitedError, and everything else that is not a
2xx, plus timeouts, transport errors and unparseable bodies, is UpstreamError.
"""

import time
from urllib.parse import quote
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import NotFoundError, RateLimitedError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..models import (
    LiveGameSnapshot,
    MasteryEntry,
    MatchDetail,
    MatchIdFilters,
    RankedEntry,
    SummonerPayload,
    UpstreamAccount,
)
from ..ratelimit.sliding_window import SlidingWindowRateLimiter
from . import routing

_RANKED_LIST = TypeAdapter(List[RankedEntry])
_MASTERY_LIST = TypeAdapter(List[MasteryEntry])
_MATCH_IDS = TypeAdapter(List[str])


class RiotApiClient:
    """Client for the Riot Games API."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 5.0,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[MetricsCollector] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_exceptions=(UpstreamError,), name="riot_api"
        )
        self.metrics = metrics
        self.logger = get_logger("lookup.upstream.client")
        self._client = http_client
        self._owns_client = http_client is None

    async def start(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_client = True
        self.logger.info("Riot API client started", timeout=self.timeout)

    async def stop(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self.logger.info("Riot API client stopped")

    # --- account-v1 ---

    async def get_account_by_riot_id(self, display_name: str, discriminator: str, realm: str) -> UpstreamAccount:
        """Resolve a display identity to its account (stable id plus canonical name)."""
        host = routing.regional_host(routing.account_region(realm))
        path = f"/riot/account/v1/accounts/by-riot-id/{_quote(display_name)}/{_quote(discriminator)}"
        data = await self._get("account_by_riot_id", host + path)
        account = self._parse(UpstreamAccount, data, "account_by_riot_id")
        if not account.puuid:
            raise UpstreamError("Account response carried no stable id")
        return account

    async def get_account_by_puuid(self, stable_id: str, realm: str) -> UpstreamAccount:
        """Current display identity for a stable id."""
        host = routing.regional_host(routing.account_region(realm))
        data = await self._get("account_by_puuid", f"{host}/riot/account/v1/accounts/by-puuid/{_quote(stable_id)}")
        return self._parse(UpstreamAccount, data, "account_by_puuid")

    # --- platform-routed ---

    async def get_summoner_by_puuid(self, stable_id: str, realm: str) -> SummonerPayload:
        url = f"{routing.platform_host(realm)}/lol/summoner/v4/summoners/by-puuid/{_quote(stable_id)}"
        data = await self._get("summoner_by_puuid", url)
        return self._parse(SummonerPayload, data, "summoner_by_puuid")

    async def get_league_entries(self, stable_id: str, realm: str) -> List[RankedEntry]:
        """Ranked standings; an unranked or unknown player is an empty list."""
        url = f"{routing.platform_host(realm)}/lol/league/v4/entries/by-puuid/{_quote(stable_id)}"
        try:
            data = await self._get("league_entries", url)
        except NotFoundError:
            return []
        return self._parse(_RANKED_LIST, data, "league_entries")

    async def get_champion_masteries(self, stable_id: str, realm: str) -> List[MasteryEntry]:
        url = f"{routing.platform_host(realm)}/lol/champion-mastery/v4/champion-masteries/by-puuid/{_quote(stable_id)}"
        try:
            data = await self._get("champion_masteries", url)
        except NotFoundError:
            return []
        return self._parse(_MASTERY_LIST, data, "champion_masteries")

    async def get_active_game(self, stable_id: str, realm: str) -> Optional[LiveGameSnapshot]:
        """Live game snapshot, or None when the player is not in a game."""
        url = f"{routing.platform_host(realm)}/lol/spectator/v5/active-games/by-summoner/{_quote(stable_id)}"
        try:
            data = await self._get("active_game", url)
        except NotFoundError:
            self.logger.debug("No active game", stable_id=stable_id, realm=realm)
            return None
        return self._parse(LiveGameSnapshot, data, "active_game")

    # --- match-v5 ---

    async def get_match_ids(
        self,
        stable_id: str,
        realm: str,
        filters: Optional[MatchIdFilters] = None,
        start: int = 0,
        count: int = 20,
    ) -> List[str]:
        host = routing.regional_host(routing.match_region(realm))
        params: Dict[str, Any] = {"start": start, "count": count}
        if filters is not None:
            if filters.start_time is not None:
                params["startTime"] = filters.start_time
            if filters.end_time is not None:
                params["endTime"] = filters.end_time
            if filters.queue is not None:
                params["queue"] = filters.queue
            if filters.type is not None:
                params["type"] = filters.type.value
        try:
            data = await self._get("match_ids", f"{host}/lol/match/v5/matches/by-puuid/{_quote(stable_id)}/ids", params)
        except NotFoundError:
            return []
        return self._parse(_MATCH_IDS, data, "match_ids")

    async def get_match(self, match_id: str, realm: str) -> MatchDetail:
        host = routing.regional_host(routing.match_region(realm))
        data = await self._get("match", f"{host}/lol/match/v5/matches/{_quote(match_id)}")
        return self._parse(MatchDetail, data, "match")

    # --- plumbing ---

    async def _get(self, endpoint: str, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire(endpoint)

        start_time = time.perf_counter()
        outcome = "ok"
        try:
            return await self.circuit_breaker.call(self._request, endpoint, url, params)
        except CircuitBreakerOpenException as e:
            outcome = "circuit_open"
            raise UpstreamError(str(e), details={"endpoint": endpoint, "retry_in": round(e.retry_in, 1)})
        except NotFoundError:
            outcome = "not_found"
            raise
        except RateLimitedError:
            outcome = "rate_limited"
            raise
        except UpstreamError:
            outcome = "error"
            raise
        finally:
            if self.metrics is not None:
                self.metrics.record_upstream_call(endpoint, outcome, time.perf_counter() - start_time)

    async def _request(self, endpoint: str, url: str, params: Optional[Dict[str, Any]]) -> Any:
        if self._client is None:
            await self.start()

        try:
            response = await self._client.get(
                url,
                params=params,
                headers={"X-Riot-Token": self.api_key},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            self.logger.error("Riot API timeout", endpoint=endpoint, timeout=self.timeout)
            raise UpstreamError("Riot API timeout", details={"endpoint": endpoint})
        except httpx.RequestError as e:
            self.logger.error("Riot API request error", endpoint=endpoint, error=str(e))
            raise UpstreamError("Riot API unavailable", details={"endpoint": endpoint})

        if response.status_code == 404:
            raise NotFoundError(f"{endpoint}: not found", details={"endpoint": endpoint})

        if response.status_code == 429:
            retry_after = _retry_after(response)
            self.logger.warning("Riot API rate limited", endpoint=endpoint, retry_after=retry_after)
            raise RateLimitedError("Riot API rate limit exceeded", retry_after=retry_after)

        if response.status_code != 200:
            self.logger.error(
                "Riot API error",
                endpoint=endpoint,
                status_code=response.status_code,
                response=response.text[:500],
            )
            raise UpstreamError(
                f"{endpoint} failed ({response.status_code})",
                details={"endpoint": endpoint, "status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError:
            raise UpstreamError(f"{endpoint} returned a non-JSON body", details={"endpoint": endpoint})

    def _parse(self, schema, data: Any, endpoint: str):
        """Validate an upstream body against its payload model."""
        try:
            if isinstance(schema, TypeAdapter):
                return schema.validate_python(data)
            return schema.model_validate(data)
        except PydanticValidationError as e:
            self.logger.error("Riot API payload failed validation", endpoint=endpoint, error=str(e))
            raise UpstreamError(f"{endpoint} returned an unexpected payload", details={"endpoint": endpoint})


def _quote(segment: str) -> str:
    return quote(segment, safe="")


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
