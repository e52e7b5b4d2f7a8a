"""
Persistence package for Lookup Service.

PostgreSQL holds the last-known-good payload per resource (second tier and
stale-fallback source) and the Riot ID -> PUUID mapping index.
"""
