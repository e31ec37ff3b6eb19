"""
Redis access for request rate limiting.
"""
import logging
from typing import Any, Dict, Optional, Tuple

import redis
from fastapi import HTTPException, Request, status

import config

logger = logging.getLogger(__name__)


class RedisClient:
    """Fixed-window counters kept in Redis"""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 enabled: Optional[bool] = None, client: Any = None):
        self.redis_host = host or config.REDIS_HOST
        self.redis_port = port or config.REDIS_PORT
        enabled = config.REDIS_ENABLED if enabled is None else enabled

        if client is not None:
            self.client = client
            return
        if not enabled:
            self.client = None
            return

        try:
            self.client = redis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            self.client.ping()
        except redis.RedisError as e:
            logger.warning(f"Could not connect to Redis: {e}")
            self.client = None

    def is_available(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False

    def check_rate_limit(self, key: str, max_requests: int = 10, window: int = 60) -> Tuple[bool, int]:
        """
        Count one request against ``key``.
        Returns (allowed, remaining requests in the window)
        """
        if not self.is_available():
            return True, max_requests  # fail open without Redis

        try:
            current = self.client.incr(key)
            if current == 1:
                # first hit opens the window
                self.client.expire(key, window)

            remaining = max(0, max_requests - current)
            allowed = current <= max_requests

            return allowed, remaining
        except redis.RedisError as e:
            logger.warning(f"Rate limit check failed: {e}")
            return True, max_requests

    def get_info(self) -> Dict[str, Any]:
        if not self.is_available():
            return {"status": "unavailable"}
        try:
            return {
                "status": "available",
                "rate_limit_keys": len(self.client.keys("rate_limit:*")),
            }
        except redis.RedisError as e:
            return {"status": "error", "error": str(e)}


def rate_limit(scope: str, max_requests: Optional[int] = None, window: Optional[int] = None,
               key_prefix: str = "rate_limit"):
    """
    FastAPI dependency limiting requests per client host for one route scope.
    """
    def dependency(request: Request) -> None:
        limit = max_requests or config.RATE_LIMIT_MAX_REQUESTS
        period = window or config.RATE_LIMIT_WINDOW

        client: RedisClient = request.app.state.redis
        client_host = request.client.host if request.client else "unknown"
        rate_key = f"{key_prefix}:{scope}:{client_host}"

        allowed, remaining = client.check_rate_limit(rate_key, limit, period)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {rate_key}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Try again in {period} seconds.",
                headers={"X-RateLimit-Limit": str(limit), "X-RateLimit-Remaining": str(remaining)},
            )
    return dependency
