"""
Tiered lookup package.

- base: The generic volatile -> durable -> upstream algorithm.
- kinds: Keys, TTLs and freshness checks per resource kind.
- bulk: Concurrent per-entity fan-out with failure isolation.
- pager: Uncached match-id pagination.
"""
