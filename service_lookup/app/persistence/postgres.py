"""
PostgreSQL durable store for the lookup service.

Holds the last-known-good profile and match detail payloads (the second tier
and the stale-fallback source) and the display identity -> stable id index.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import AccessLayerException, LocalStoreError
from ..models import IdentityMapping, IdentitySuggestion


async def _init_connection(conn):
    """Decode JSONB columns to Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog"
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DurableRecord:
    """A stored payload plus the time it was last fetched from upstream."""

    __slots__ = ("payload", "last_fetched")

    def __init__(self, payload: Any, last_fetched: datetime):
        self.payload = payload
        self.last_fetched = last_fetched

    def __repr__(self):
        return f"DurableRecord(last_fetched={self.last_fetched!r})"


class PostgreSQLPersistence:
    """PostgreSQL persistence for cached payloads and identity mappings.

    Every query raises LocalStoreError on failure; callers decide whether that
    is a miss (reads) or a logged no-op (writes).
    """

    TIER = "durable"

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10, pool: Optional[asyncpg.Pool] = None):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("lookup.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        """Start the persistence layer."""
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=30,
                    init=_init_connection
                )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise AccessLayerException("POSTGRES_START_FAILED", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS profile_cache (
                    stable_id VARCHAR(128) PRIMARY KEY,
                    payload JSONB NOT NULL,
                    last_fetched TIMESTAMP WITH TIME ZONE NOT NULL,
                    realm VARCHAR(16) NOT NULL,
                    last_known_display_name VARCHAR(64),
                    last_known_discriminator VARCHAR(16)
                );
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS identity_mapping (
                    display_name VARCHAR(64) NOT NULL,
                    discriminator VARCHAR(16) NOT NULL,
                    realm VARCHAR(16) NOT NULL,
                    stable_id VARCHAR(128) NOT NULL,
                    last_verified TIMESTAMP WITH TIME ZONE NOT NULL
                );
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS match_detail (
                    match_id VARCHAR(64) PRIMARY KEY,
                    realm VARCHAR(16) NOT NULL,
                    payload JSONB NOT NULL,
                    last_fetched TIMESTAMP WITH TIME ZONE NOT NULL
                );
            """)

            # Create indexes
            # Riot IDs are case-insensitive; one row per identity regardless of casing
            await conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_identity_mapping_key
                    ON identity_mapping(lower(display_name), lower(discriminator), realm);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_identity_mapping_stable_id ON identity_mapping(stable_id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_identity_mapping_search
                    ON identity_mapping(realm, lower(display_name) text_pattern_ops);
            """)

    # --- profile_cache ---

    async def get_profile(self, stable_id: str) -> Optional[DurableRecord]:
        """Load a cached profile payload."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT payload, last_fetched FROM profile_cache WHERE stable_id = $1
                """, stable_id)
        except Exception as e:
            raise LocalStoreError(self.TIER, f"profile read failed: {e}", {"stable_id": stable_id})

        if not row:
            return None
        return DurableRecord(row["payload"], row["last_fetched"])

    async def upsert_profile(self, stable_id: str, realm: str, payload: Dict[str, Any], last_fetched: datetime):
        """Save a profile payload, replacing any previous one."""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO profile_cache (
                        stable_id, payload, last_fetched, realm,
                        last_known_display_name, last_known_discriminator
                    ) VALUES ($1, $2, $3, $4, $5, $6)
                    ON CONFLICT (stable_id) DO UPDATE SET
                        payload = EXCLUDED.payload,
                        last_fetched = EXCLUDED.last_fetched,
                        realm = EXCLUDED.realm,
                        last_known_display_name = EXCLUDED.last_known_display_name,
                        last_known_discriminator = EXCLUDED.last_known_discriminator
                """,
                    stable_id, payload, last_fetched, realm,
                    payload.get("display_name"), payload.get("discriminator")
                )
        except Exception as e:
            raise LocalStoreError(self.TIER, f"profile write failed: {e}", {"stable_id": stable_id})

        self.logger.debug("Profile saved", stable_id=stable_id, realm=realm)

    # --- match_detail ---

    async def get_match_detail(self, match_id: str) -> Optional[DurableRecord]:
        """Load a cached match detail payload."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT payload, last_fetched FROM match_detail WHERE match_id = $1
                """, match_id)
        except Exception as e:
            raise LocalStoreError(self.TIER, f"match read failed: {e}", {"match_id": match_id})

        if not row:
            return None
        return DurableRecord(row["payload"], row["last_fetched"])

    async def upsert_match_detail(self, match_id: str, realm: str, payload: Dict[str, Any], last_fetched: datetime):
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO match_detail (match_id, realm, payload, last_fetched)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (match_id) DO UPDATE SET
                        realm = EXCLUDED.realm,
                        payload = EXCLUDED.payload,
                        last_fetched = EXCLUDED.last_fetched
                """, match_id, realm, payload, last_fetched)
        except Exception as e:
            raise LocalStoreError(self.TIER, f"match write failed: {e}", {"match_id": match_id})

        self.logger.debug("Match detail saved", match_id=match_id, realm=realm)

    # --- identity_mapping ---

    async def get_mapping(self, display_name: str, discriminator: str, realm: str) -> Optional[IdentityMapping]:
        """Load the mapping row for a display identity."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT display_name, discriminator, realm, stable_id, last_verified
                    FROM identity_mapping
                    WHERE lower(display_name) = lower($1) AND lower(discriminator) = lower($2) AND realm = $3
                """, display_name, discriminator, realm)
        except Exception as e:
            raise LocalStoreError(self.TIER, f"mapping read failed: {e}")

        if not row:
            return None
        return IdentityMapping(**dict(row))

    async def insert_mapping(self, mapping: IdentityMapping):
        """Insert a mapping; an existing row for the same identity in any casing wins."""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO identity_mapping (display_name, discriminator, realm, stable_id, last_verified)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT ((lower(display_name)), (lower(discriminator)), realm) DO NOTHING
                """,
                    mapping.display_name, mapping.discriminator, mapping.realm,
                    mapping.stable_id, mapping.last_verified
                )
        except Exception as e:
            raise LocalStoreError(self.TIER, f"mapping insert failed: {e}", {"stable_id": mapping.stable_id})

    async def upsert_mapping(self, mapping: IdentityMapping):
        """Insert a mapping or refresh the existing row, adopting the given casing."""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO identity_mapping (display_name, discriminator, realm, stable_id, last_verified)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT ((lower(display_name)), (lower(discriminator)), realm) DO UPDATE SET
                        display_name = EXCLUDED.display_name,
                        discriminator = EXCLUDED.discriminator,
                        stable_id = EXCLUDED.stable_id,
                        last_verified = EXCLUDED.last_verified
                """,
                    mapping.display_name, mapping.discriminator, mapping.realm,
                    mapping.stable_id, mapping.last_verified
                )
        except Exception as e:
            raise LocalStoreError(self.TIER, f"mapping upsert failed: {e}", {"stable_id": mapping.stable_id})

    async def delete_other_mappings(self, stable_id: str, realm: str, keep_display_name: str, keep_discriminator: str) -> int:
        """Remove every mapping row for this stable id except the current one."""
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute("""
                    DELETE FROM identity_mapping
                    WHERE stable_id = $1 AND realm = $2
                      AND NOT (lower(display_name) = lower($3) AND lower(discriminator) = lower($4))
                """, stable_id, realm, keep_display_name, keep_discriminator)
        except Exception as e:
            raise LocalStoreError(self.TIER, f"mapping delete failed: {e}", {"stable_id": stable_id})

        deleted = int(result.split()[-1]) if result else 0
        if deleted:
            self.logger.info("Removed outdated identity mappings", stable_id=stable_id, realm=realm, deleted=deleted)
        return deleted

    async def search_mappings(self, partial_name: str, realm: str, limit: int) -> List[IdentitySuggestion]:
        """Prefix search over known display names, newest verification first."""
        pattern = _escape_like(partial_name.lower()) + "%"
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT m.display_name, m.discriminator, m.stable_id,
                           (p.payload->>'profile_icon_id')::int AS profile_icon_id
                    FROM identity_mapping m
                    LEFT JOIN profile_cache p ON p.stable_id = m.stable_id
                    WHERE m.realm = $1 AND lower(m.display_name) LIKE $2
                    ORDER BY m.last_verified DESC
                    LIMIT $3
                """, realm, pattern, limit)
        except Exception as e:
            raise LocalStoreError(self.TIER, f"mapping search failed: {e}")

        return [IdentitySuggestion(**dict(row)) for row in rows]

    async def health_check(self) -> bool:
        """Check PostgreSQL health."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False
