"""
Lookup Service package for RiftRadar.

Answers player and match lookups from a tiered cache in front of the Riot
Games API, with bounded latency and tolerable staleness. It provides:

- app.main: API surface for lookups, health and metrics.
- app.lookup: The facade handlers call, and ``build_lookup`` wiring.
- app.identity: Riot ID -> PUUID resolution and re-verification.
- app.orchestrator: Tiered lookup per resource kind, bulk fan-out, match-id pages.
- app.cache: Redis volatile tier.
- app.persistence: PostgreSQL durable store and identity index.
- app.upstream: Riot API client and realm routing.
- app.ratelimit: Shared sliding-window budget for upstream calls.

Guidelines:
- The service is stateless; rely on external cache/DB.
- Tier failures degrade to misses; only upstream outcomes surface to callers.
- Refresh is lazy and read-triggered; there are no background workers.
"""
