"""
Redis-backed ledger store.
"""

import json
from typing import Dict, Any, Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from shared.logging import get_logger
from shared.errors import ServiceError
from .store import LedgerStore, VersionedRecord


class RedisLedgerStore(LedgerStore):
    """Optimistic WATCH/MULTI/EXEC store.

    Each key holds ``{"version": n, "value": {...}}`` as JSON.
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("pricing.ledger.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect and verify the Redis server."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self.redis.ping()
            self.logger.info("Redis ledger store started")

        except Exception as e:
            self.logger.error("Failed to start Redis ledger store", error=str(e))
            raise ServiceError("Redis ledger store unavailable", {"error": str(e)})

    async def stop(self):
        if self.redis:
            await self.redis.close()
            self.logger.info("Redis ledger store stopped")

    async def get(self, key: str) -> VersionedRecord:
        raw = await self.redis.get(key)
        return self._decode(raw)

    async def compare_and_set(self, key: str, expected_version: int, value: Dict[str, Any]) -> bool:
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = self._decode(await pipe.get(key))
                if current.version != expected_version:
                    await pipe.unwatch()
                    return False

                pipe.multi()
                pipe.set(key, json.dumps({"version": expected_version + 1, "value": value}))
                await pipe.execute()
                return True

            except WatchError:
                self.logger.warning("Ledger key changed during transaction", key=key)
                return False

    async def health_check(self) -> bool:
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False

    @staticmethod
    def _decode(raw) -> VersionedRecord:
        if not raw:
            return VersionedRecord(value=None, version=0)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        return VersionedRecord(value=data.get("value"), version=int(data.get("version", 0)))
