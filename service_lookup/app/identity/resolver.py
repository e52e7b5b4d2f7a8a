"""
Display identity -> stable id resolution.

A mapping verified within the last seven days is trusted as is. An older one
is re-verified against upstream before anything name-dependent runs. The
re-verification is a saga of idempotent steps (read mapping, ask upstream,
upsert the current triple, drop the other rows for the stable id), so a crash
between steps leaves at most a duplicate row that the next pass cleans up.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from shared.errors import LocalStoreError, NotFoundError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..models import IdentityMapping, StableIdentity
from ..persistence.postgres import PostgreSQLPersistence
from ..upstream.client import RiotApiClient
from ..upstream.routing import normalize_realm

VERIFICATION_WINDOW = timedelta(days=7)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def same_display_identity(display_name: str, discriminator: str, other_name: str, other_discriminator: str) -> bool:
    """Riot IDs compare case-insensitively, using the same folding as the mapping table."""
    return (
        display_name.lower() == other_name.lower()
        and discriminator.lower() == other_discriminator.lower()
    )


class IdentityResolver:
    """Maps (display name, discriminator, realm) to a stable identity."""

    def __init__(
        self,
        store: PostgreSQLPersistence,
        upstream: RiotApiClient,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = utcnow,
        verification_window: timedelta = VERIFICATION_WINDOW,
    ):
        self.store = store
        self.upstream = upstream
        self.metrics = metrics
        self.clock = clock
        self.verification_window = verification_window
        self.logger = get_logger("lookup.identity.resolver")

    async def resolve(self, display_name: str, discriminator: str, realm: str) -> StableIdentity:
        """Resolve a display identity.

        Raises NotFoundError when upstream has no such account and
        UpstreamError (or RateLimitedError) when upstream cannot answer and no
        mapping is known. The returned identity carries the best currently
        known display name; ``verified`` is set when upstream confirmed it
        during this call.
        """
        realm = normalize_realm(realm)
        mapping = await self._read_mapping(display_name, discriminator, realm)

        if mapping is not None:
            age = self.clock() - mapping.last_verified
            if age < self.verification_window:
                self.logger.debug("Identity mapping hit", stable_id=mapping.stable_id, realm=realm)
                return StableIdentity(
                    stable_id=mapping.stable_id,
                    display_name=mapping.display_name,
                    discriminator=mapping.discriminator,
                    realm=realm,
                )
            return await self._reverify(mapping)

        return await self._resolve_cold(display_name, discriminator, realm)

    async def _resolve_cold(self, display_name: str, discriminator: str, realm: str) -> StableIdentity:
        try:
            account = await self.upstream.get_account_by_riot_id(display_name, discriminator, realm)
        except NotFoundError:
            self.logger.info("Unknown display identity", display_name=display_name, discriminator=discriminator)
            raise

        await self._write(
            "insert_mapping",
            IdentityMapping(
                display_name=account.game_name or display_name,
                discriminator=account.tag_line or discriminator,
                realm=realm,
                stable_id=account.puuid,
                last_verified=self.clock(),
            ),
        )

        self.logger.info("Resolved display identity", stable_id=account.puuid, realm=realm)
        return StableIdentity(
            stable_id=account.puuid,
            display_name=account.game_name or display_name,
            discriminator=account.tag_line or discriminator,
            realm=realm,
            verified=True,
        )

    async def _reverify(self, mapping: IdentityMapping) -> StableIdentity:
        provisional = StableIdentity(
            stable_id=mapping.stable_id,
            display_name=mapping.display_name,
            discriminator=mapping.discriminator,
            realm=mapping.realm,
        )

        try:
            account = await self.upstream.get_account_by_puuid(mapping.stable_id, mapping.realm)
        except (NotFoundError, UpstreamError) as e:
            self.logger.warning(
                "Identity re-verification failed, using stored mapping",
                stable_id=mapping.stable_id,
                code=e.code,
                error=e.message,
            )
            return provisional

        if not account.game_name or not account.tag_line:
            self.logger.warning("Re-verification returned no display identity", stable_id=mapping.stable_id)
            return provisional

        now = self.clock()
        current = StableIdentity(
            stable_id=mapping.stable_id,
            display_name=account.game_name,
            discriminator=account.tag_line,
            realm=mapping.realm,
            verified=True,
        )

        if not same_display_identity(mapping.display_name, mapping.discriminator, current.display_name, current.discriminator):
            self.logger.info(
                "Display identity changed",
                stable_id=mapping.stable_id,
                previous=f"{mapping.display_name}#{mapping.discriminator}",
                current=f"{current.display_name}#{current.discriminator}",
            )

        # Upsert adopts the canonical casing even when the name is unchanged;
        # the delete also clears rows left behind by an interrupted earlier pass.
        await self._write(
            "upsert_mapping",
            IdentityMapping(
                display_name=current.display_name,
                discriminator=current.discriminator,
                realm=current.realm,
                stable_id=current.stable_id,
                last_verified=now,
            ),
        )
        await self._write(
            "delete_other_mappings",
            current.stable_id,
            current.realm,
            current.display_name,
            current.discriminator,
        )
        return current

    async def _read_mapping(self, display_name: str, discriminator: str, realm: str) -> Optional[IdentityMapping]:
        try:
            return await self.store.get_mapping(display_name, discriminator, realm)
        except LocalStoreError as e:
            self.logger.error("Identity mapping read failed", error=e.message)
            if self.metrics:
                self.metrics.record_tier_error(e.tier, "get_mapping")
            return None

    async def _write(self, operation: str, *args) -> None:
        try:
            await getattr(self.store, operation)(*args)
        except LocalStoreError as e:
            self.logger.error("Identity mapping write failed", operation=operation, error=e.message)
            if self.metrics:
                self.metrics.record_tier_error(e.tier, operation)
