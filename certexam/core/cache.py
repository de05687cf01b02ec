import redis
import logging
from typing import Tuple

logger = logging.getLogger(__name__)

def build_redis(url: str) -> redis.Redis:
    return redis.Redis.from_url(url, decode_responses=True, socket_timeout=2, socket_connect_timeout=2)

def rate_limit_key(identifier: str) -> str:
    return f"rate_limit:{identifier}"

def check_rate_limit(client: redis.Redis, identifier: str, limit: int, window: int) -> Tuple[bool, int]:
    """Counter with a window TTL refreshed on each hit; returns (allowed, current_count). Fails open when redis is unreachable."""
    key = rate_limit_key(identifier)
    try:
        pipe = client.pipeline()
        pipe.incr(key, 1)
        pipe.expire(key, window)
        results = pipe.execute()
        current = int(results[0])
        return current <= limit, current
    except redis.RedisError as e:
        logger.error(f"Rate limit check error: {e}")
        return True, 0
