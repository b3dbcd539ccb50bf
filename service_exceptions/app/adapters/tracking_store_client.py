"""
Redis-backed tracking store for rules that carry live exceptions.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.config import BaseConfig
from shared.logging import get_logger
from shared.errors import ConfigMissingError, StoreTransportError
from ..models import TrackingEntry, TrackingPage

STORE_NAME = "tracking_store"


class TrackingStoreClient:
    """Key-value access to tracking entries, keyed by rule id.

    Keys live under ``key_prefix`` so listing can be scoped with ``SCAN``.
    Listing is cursor based: callers keep passing the returned cursor until
    the page reports ``list_complete``.
    """

    def __init__(self, redis_url: Optional[str], key_prefix: str = "gateway_rule:", scan_count: int = 100):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.scan_count = scan_count
        self.logger = get_logger("exceptions.tracking_store")
        self.redis: Optional[redis.Redis] = None

    @classmethod
    def from_config(cls, config: BaseConfig) -> "TrackingStoreClient":
        return cls(
            redis_url=config.redis_url,
            key_prefix=config.tracking_key_prefix,
            scan_count=config.tracking_scan_count,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.redis_url) or self.redis is not None

    async def start(self):
        """Open the Redis connection pool and check connectivity."""
        self._connection()
        try:
            await self.redis.ping()
            self.logger.info("Tracking store started")
        except RedisError as e:
            # Commands reconnect on use; an unreachable store only fails the calls that need it
            self.logger.error("Tracking store unreachable at startup", error=str(e))

    async def stop(self):
        """Close the Redis connection pool."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Tracking store stopped")

    def _connection(self) -> redis.Redis:
        if self.redis is None:
            if not self.redis_url:
                raise ConfigMissingError("Tracking store URL not configured")
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30
            )
        return self.redis

    def _key(self, rule_id: str) -> str:
        return f"{self.key_prefix}{rule_id}"

    async def get(self, rule_id: str) -> Optional[TrackingEntry]:
        """Return the tracking entry for ``rule_id`` or None when untracked."""
        try:
            raw = await self._connection().get(self._key(rule_id))
        except RedisError as e:
            raise StoreTransportError(STORE_NAME, f"GET failed: {e}")

        if raw is None:
            return None
        try:
            return TrackingEntry.from_json(raw)
        except (ValueError, KeyError, TypeError):
            # Present but unreadable still means "tracked"
            self.logger.warning("Malformed tracking entry", rule_id=rule_id)
            return TrackingEntry(first_user_email="")

    async def put(self, rule_id: str, entry: TrackingEntry) -> bool:
        """Store ``entry`` unless the rule is already tracked.

        Uses ``SET NX`` so the first writer wins; returns False when an entry
        already existed and nothing was written.
        """
        try:
            stored = await self._connection().set(self._key(rule_id), entry.to_json(), nx=True)
        except RedisError as e:
            raise StoreTransportError(STORE_NAME, f"PUT failed: {e}")
        if stored:
            self.logger.debug("Tracking entry stored", rule_id=rule_id)
        return bool(stored)

    async def list(self, cursor: Optional[str] = None) -> TrackingPage:
        """Return one page of tracked rule ids starting at ``cursor``."""
        try:
            next_cursor, keys = await self._connection().scan(
                cursor=int(cursor or 0),
                match=f"{self.key_prefix}*",
                count=self.scan_count
            )
        except RedisError as e:
            raise StoreTransportError(STORE_NAME, f"LIST failed: {e}")

        rule_ids = [key[len(self.key_prefix):] for key in keys]
        complete = int(next_cursor) == 0
        return TrackingPage(
            keys=rule_ids,
            cursor=None if complete else str(next_cursor),
            list_complete=complete
        )

    async def delete(self, rule_id: str) -> None:
        try:
            await self._connection().delete(self._key(rule_id))
        except RedisError as e:
            raise StoreTransportError(STORE_NAME, f"DELETE failed: {e}")

    async def health_check(self) -> bool:
        try:
            await self._connection().ping()
            return True
        except (RedisError, ConfigMissingError):
            return False
