"""
Unit tests for the Lookup service HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

from shared.config import ServiceConfig
from shared.errors import RateLimitedError, UpstreamError
from shared.metrics import MetricsCollector
from service_lookup.app.main import create_app
from service_lookup.app.models import RankedEntry


@pytest.fixture
def client(lookup, metrics):
    """Test client over fake tiers; lifespan is not entered so nothing connects."""
    app = create_app(config=ServiceConfig(env="test"), metrics=metrics, lookup=lookup)
    return TestClient(app)


class TestCommonRoutes:

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "lookup"
        assert data["version"] == "1.0.0"

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "lookup"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"redis": "ok", "postgres": "ok"}

    def test_health_check_degraded(self, client, store):
        store.failing = True

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["dependencies"]["postgres"] == "error"

    def test_metrics_endpoint(self, client):
        client.get("/api/v1/kr/riot-id/Faker/KR1/profile")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "cache_lookups_total" in response.text
        assert 'kind="profile"' in response.text


class TestProfileRoutes:

    def test_get_profile(self, client):
        response = client.get("/api/v1/kr/riot-id/Faker/KR1/profile")

        assert response.status_code == 200
        data = response.json()
        assert data["stableId"] == "puuid-faker"
        assert data["displayName"] == "Faker"
        assert data["profileIconId"] == 6
        assert response.headers["X-Request-ID"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/v1/kr/riot-id/Faker/KR1/profile", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_unknown_player_is_404(self, client):
        response = client.get("/api/v1/kr/riot-id/Nobody/0000/profile")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_rate_limited_is_429(self, client, upstream):
        upstream.failures["account_by_riot_id"] = RateLimitedError(retry_after=3)

        response = client.get("/api/v1/kr/riot-id/Faker/KR1/profile")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3"
        assert response.json()["code"] == "RATE_LIMITED"

    def test_upstream_failure_is_502(self, client, upstream):
        upstream.failures["account_by_riot_id"] = UpstreamError("down")

        response = client.get("/api/v1/kr/riot-id/Faker/KR1/profile")

        assert response.status_code == 502
        assert response.json()["code"] == "UPSTREAM_ERROR"

    def test_overview(self, client, upstream):
        upstream.match_ids["puuid-faker"] = ["KR_1"]

        response = client.get("/api/v1/kr/riot-id/Faker/KR1/overview")

        assert response.status_code == 200
        data = response.json()
        assert data["identity"]["stableId"] == "puuid-faker"
        assert data["recentMatches"]["items"] == ["KR_1"]


class TestPlayerRoutes:

    def test_ranked(self, client, upstream):
        upstream.league_entries["puuid-faker"] = [RankedEntry(queue_type="RANKED_SOLO_5x5", tier="CHALLENGER", rank="I")]

        response = client.get("/api/v1/kr/players/puuid-faker/ranked")

        assert response.status_code == 200
        assert response.json()[0]["queueType"] == "RANKED_SOLO_5x5"

    def test_bulk_ranked(self, client, upstream):
        upstream.league_entries["puuid-a"] = [RankedEntry(queue_type="RANKED_FLEX_SR", tier="GOLD", rank="II")]

        response = client.post(
            "/api/v1/ranked/bulk",
            json={"players": [{"stableId": "puuid-a", "realm": "kr"}, {"stable_id": "puuid-b", "realm": "kr"}]},
        )

        assert response.status_code == 200
        data = response.json()
        assert [item["stableId"] for item in data] == ["puuid-a", "puuid-b"]
        assert data[0]["entries"][0]["tier"] == "GOLD"
        assert data[1]["entries"] == []

    def test_match_id_page(self, client, upstream):
        upstream.match_ids["puuid-faker"] = [f"KR_{n}" for n in range(5)]

        response = client.get("/api/v1/kr/players/puuid-faker/matches", params={"cursor": 0, "page_size": 5, "type": "ranked"})

        assert response.status_code == 200
        assert response.json() == {"items": [f"KR_{n}" for n in range(5)], "nextCursor": 5}

    def test_page_size_out_of_range_is_400(self, client):
        response = client.get("/api/v1/kr/players/puuid-faker/matches", params={"page_size": 0})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_malformed_cursor_is_400(self, client):
        response = client.get("/api/v1/kr/players/puuid-faker/matches", params={"cursor": "soon"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("path", [
        "/api/v1/attacker.example%23/players/puuid-faker/ranked",
        "/api/v1/evil.com/matches/KR_1",
        "/api/v1/pbe1/riot-id/Faker/KR1/profile",
        "/api/v1/xx/search?q=fak",
    ])
    def test_unknown_realm_is_400(self, client, upstream, path):
        response = client.get(path)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert upstream.total_calls() == 0

    def test_live_game_not_in_game(self, client):
        response = client.get("/api/v1/kr/players/puuid-faker/live-game")

        assert response.status_code == 200
        assert response.json() == {"inGame": False, "game": None}

    def test_match_detail_not_found(self, client):
        response = client.get("/api/v1/kr/matches/KR_404")

        assert response.status_code == 404


class TestSearchRoute:

    def test_search_after_lookup(self, client):
        client.get("/api/v1/kr/riot-id/Faker/KR1/profile")

        response = client.get("/api/v1/kr/search", params={"q": "fak"})

        assert response.status_code == 200
        data = response.json()
        assert data == [{"displayName": "Faker", "discriminator": "KR1", "stableId": "puuid-faker", "profileIconId": 6}]

    def test_search_limit_out_of_range(self, client):
        response = client.get("/api/v1/kr/search", params={"q": "fak", "limit": 50})

        assert response.status_code == 400
