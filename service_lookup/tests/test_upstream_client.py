"""
Unit tests for the Riot API client.
"""

import httpx
import pytest
from unittest.mock import AsyncMock

from shared.circuit_breaker import CircuitBreaker
from shared.errors import NotFoundError, RateLimitedError, UpstreamError, ValidationError
from shared.metrics import MetricsCollector
from service_lookup.app.models import MatchIdFilters, MatchType
from service_lookup.app.upstream import routing
from service_lookup.app.upstream.client import RiotApiClient


def make_client(handler, **kwargs) -> RiotApiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RiotApiClient("RGAPI-test", timeout=1.0, http_client=http_client, **kwargs)


class TestRiotApiClient:
    """Test cases for RiotApiClient."""

    @pytest.mark.asyncio
    async def test_account_by_riot_id(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"puuid": "puuid-faker", "gameName": "Faker", "tagLine": "KR1"})

        client = make_client(handler)
        account = await client.get_account_by_riot_id("Hide on bush", "KR1", "kr")

        assert account.puuid == "puuid-faker"
        assert account.game_name == "Faker"
        assert seen[0].url.host == "asia.api.riotgames.com"
        assert seen[0].url.raw_path.decode() == "/riot/account/v1/accounts/by-riot-id/Hide%20on%20bush/KR1"
        assert seen[0].headers["X-Riot-Token"] == "RGAPI-test"

    @pytest.mark.asyncio
    async def test_oceania_routes_differ_between_account_and_match(self):
        hosts = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if "/account/" in request.url.path:
                return httpx.Response(200, json={"puuid": "p"})
            return httpx.Response(200, json=[])

        client = make_client(handler)
        await client.get_account_by_puuid("p", "oc1")
        await client.get_match_ids("p", "oc1")

        assert hosts == ["americas.api.riotgames.com", "europe.api.riotgames.com"]

    @pytest.mark.asyncio
    async def test_summoner_is_platform_routed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "euw1.api.riotgames.com"
            return httpx.Response(200, json={"puuid": "p", "profileIconId": 4, "summonerLevel": 120, "revisionDate": 1})

        summoner = await make_client(handler).get_summoner_by_puuid("p", "EUW1")

        assert summoner.summoner_level == 120
        assert summoner.profile_icon_id == 4

    @pytest.mark.asyncio
    async def test_unknown_realm_never_reaches_the_network(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.host, request.headers.get("X-Riot-Token")))
            return httpx.Response(200, json={"puuid": "p"})

        client = make_client(handler)

        with pytest.raises(ValidationError):
            await client.get_summoner_by_puuid("p", "attacker.example#")
        with pytest.raises(ValidationError):
            await client.get_match("KR_1", "attacker.example#")

        assert seen == []

    @pytest.mark.asyncio
    async def test_ids_are_escaped_in_paths(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.raw_path.decode())
            return httpx.Response(200, json=[])

        client = make_client(handler)
        await client.get_league_entries("a/b?c", "kr")

        assert paths == ["/lol/league/v4/entries/by-puuid/a%2Fb%3Fc"]

    @pytest.mark.asyncio
    async def test_not_found(self):
        client = make_client(lambda request: httpx.Response(404, json={"status": {"status_code": 404}}))

        with pytest.raises(NotFoundError):
            await client.get_account_by_riot_id("Nobody", "0000", "kr")

    @pytest.mark.asyncio
    async def test_not_found_means_empty_for_list_endpoints(self):
        client = make_client(lambda request: httpx.Response(404))

        assert await client.get_league_entries("p", "kr") == []
        assert await client.get_champion_masteries("p", "kr") == []
        assert await client.get_match_ids("p", "kr") == []
        assert await client.get_active_game("p", "kr") is None

    @pytest.mark.asyncio
    async def test_rate_limited_carries_retry_after(self):
        client = make_client(lambda request: httpx.Response(429, headers={"Retry-After": "7"}))

        with pytest.raises(RateLimitedError) as exc_info:
            await client.get_summoner_by_puuid("p", "kr")

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.code == "RATE_LIMITED"

    @pytest.mark.asyncio
    async def test_server_error(self):
        client = make_client(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(UpstreamError) as exc_info:
            await client.get_match("KR_1", "kr")

        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamError):
            await make_client(handler).get_match("KR_1", "kr")

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_upstream_error(self):
        client = make_client(lambda request: httpx.Response(200, json={"unexpected": True}))

        with pytest.raises(UpstreamError):
            await client.get_summoner_by_puuid("p", "kr")

    @pytest.mark.asyncio
    async def test_match_id_filters_become_query_params(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(dict(request.url.params))
            return httpx.Response(200, json=["KR_3", "KR_2"])

        filters = MatchIdFilters(queue=420, type=MatchType.RANKED, start_time=1700000000)
        ids = await make_client(handler).get_match_ids("p", "kr", filters, start=20, count=10)

        assert ids == ["KR_3", "KR_2"]
        assert seen[0] == {"start": "20", "count": "10", "startTime": "1700000000", "queue": "420", "type": "ranked"}

    @pytest.mark.asyncio
    async def test_active_game(self):
        body = {
            "gameId": 42,
            "gameType": "MATCHED",
            "gameStartTime": 1717243200000,
            "mapId": 11,
            "gameLength": 120,
            "platformId": "KR",
            "gameMode": "CLASSIC",
            "participants": [{"puuid": "p", "championId": 7, "teamId": 100, "spell1Id": 4, "spell2Id": 14}],
        }
        snapshot = await make_client(lambda request: httpx.Response(200, json=body)).get_active_game("p", "kr")

        assert snapshot.game_id == 42
        assert snapshot.participants[0].spell1_id == 4

    @pytest.mark.asyncio
    async def test_local_budget_refusal_skips_the_network(self):
        handler_calls = []

        def handler(request):
            handler_calls.append(request)
            return httpx.Response(200, json={"puuid": "p"})

        rate_limiter = AsyncMock()
        rate_limiter.acquire.side_effect = RateLimitedError("budget", retry_after=1.0)
        client = make_client(handler, rate_limiter=rate_limiter)

        with pytest.raises(RateLimitedError):
            await client.get_account_by_puuid("p", "kr")

        assert handler_calls == []
        rate_limiter.acquire.assert_awaited_once_with("account_by_puuid")

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self):
        handler_calls = []

        def handler(request):
            handler_calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60, failure_exceptions=(UpstreamError,), name="test")
        client = make_client(handler, circuit_breaker=breaker)

        for _ in range(2):
            with pytest.raises(UpstreamError):
                await client.get_match("KR_1", "kr")
        with pytest.raises(UpstreamError) as exc_info:
            await client.get_match("KR_1", "kr")

        assert len(handler_calls) == 2
        assert "OPEN" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_not_found_does_not_trip_circuit(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, failure_exceptions=(UpstreamError,), name="test")
        client = make_client(lambda request: httpx.Response(404), circuit_breaker=breaker)

        with pytest.raises(NotFoundError):
            await client.get_match("KR_1", "kr")

        assert breaker.is_open() is False

    @pytest.mark.asyncio
    async def test_outcomes_are_recorded(self):
        metrics = MetricsCollector("lookup")
        client = make_client(lambda request: httpx.Response(404), metrics=metrics)

        await client.get_league_entries("p", "kr")

        assert metrics.sample("upstream_calls_total", endpoint="league_entries", outcome="not_found") == 1.0


class TestRouting:

    def test_match_region_for_known_realms(self):
        assert routing.match_region("NA1") == "americas"
        assert routing.match_region("kr") == "asia"
        assert routing.match_region("vn2") == "sea"

    @pytest.mark.parametrize("realm", ["pbe1", "attacker.example#", "kr.evil.com/", ""])
    def test_unknown_realm_is_rejected(self, realm):
        with pytest.raises(ValidationError):
            routing.platform_host(realm)
        with pytest.raises(ValidationError):
            routing.account_region(realm)
