"""
Redis cache for the FX rate table
Every failure degrades to a cache miss so callers re-read the settings table
"""
import json
import logging
from typing import Optional

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)

FX_CACHE_KEY = "fx_rates"
FX_CACHE_TTL = 60


def _valid_rates(value) -> Optional[dict[str, float]]:
    """A cached table is only trusted when every rate is a positive number"""
    if not isinstance(value, dict) or not value:
        return None
    rates = {}
    for currency, rate in value.items():
        if not isinstance(currency, str) or isinstance(rate, bool) or not isinstance(rate, (int, float)):
            return None
        if rate <= 0:
            return None
        rates[currency] = float(rate)
    return rates


class RateTableCache:
    """Keeps the "USD per unit" rate table in Redis under one key"""

    def __init__(self, key: str = FX_CACHE_KEY, ttl: int = FX_CACHE_TTL):
        self.key = key
        self.ttl = ttl
        self.redis_client = None

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
        return self.redis_client

    def get_rates(self) -> Optional[dict[str, float]]:
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(self.key)
        except Exception as e:
            logger.error(f"❌ FX cache read failed: {e}")
            return None
        if not value:
            logger.debug("❌ FX cache MISS")
            return None

        try:
            rates = _valid_rates(json.loads(value))
        except ValueError:
            rates = None
        if rates is None:
            logger.warning(f"⚠️ Ignoring malformed FX rate table in cache: {value[:100]}")
            return None
        logger.debug("✅ FX cache HIT")
        return rates

    def set_rates(self, rates: dict[str, float]) -> bool:
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(self.key, self.ttl, json.dumps(rates))
            logger.debug(f"✅ FX rates cached (TTL: {self.ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ FX cache write failed: {e}")
            return False

    def invalidate(self) -> bool:
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(self.key)
            return True
        except Exception as e:
            logger.error(f"❌ FX cache delete failed: {e}")
            return False


# Global cache instance
fx_rate_cache = RateTableCache()
