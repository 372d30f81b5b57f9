"""Fixed-window request rate limiting backed by Redis.

Two counters per request: one per client IP and one per session (when the
request names a session). Each counter lives for one window and is created
by the first request in that window.

Redis operations are synchronous. When Redis is unreachable the limiter
fails open: the request is allowed and the failure is logged.
"""

import redis
from loguru import logger

WINDOW_SECONDS = 60


class RateLimitExceeded(Exception):
    """Raised when a client exceeds its request budget. Mapped to HTTP 429."""

    def __init__(self, scope: str, limit: int, retry_after: int):
        self.scope = scope  # "ip" | "session"
        self.limit = limit
        self.retry_after = retry_after
        per = "IP" if scope == "ip" else "session"
        self.message = f"Rate limit exceeded: {limit} requests per minute per {per}"
        super().__init__(self.message)


class RateLimiter:
    def __init__(
        self,
        redis_client: redis.Redis,
        ip_limit: int,
        session_limit: int,
        window_seconds: int = WINDOW_SECONDS,
    ) -> None:
        self._redis = redis_client
        self._ip_limit = ip_limit
        self._session_limit = session_limit
        self._window_seconds = window_seconds

    def check(self, client_ip: str, session_id: str | None) -> None:
        """Count this request against the IP and session budgets.

        Raises:
            RateLimitExceeded: If either budget is exhausted for the current window
        """
        try:
            self._hit(f"rate_limit:ip:{client_ip}", "ip", self._ip_limit)
            if session_id:
                self._hit(f"rate_limit:session:{session_id}", "session", self._session_limit)
        except redis.RedisError as e:
            logger.warning(
                "Rate limiter unavailable, allowing request",
                client_ip=client_ip,
                error=str(e),
                event="rate_limit_redis_error",
            )

    def _hit(self, key: str, scope: str, limit: int) -> None:
        count = int(self._redis.incr(key))
        if count == 1:
            self._redis.expire(key, self._window_seconds)

        if count > limit:
            ttl = self._redis.ttl(key)
            retry_after = ttl if isinstance(ttl, int) and ttl > 0 else self._window_seconds
            logger.info("rate_limit_exceeded", key=key, scope=scope, count=count, limit=limit)
            raise RateLimitExceeded(scope=scope, limit=limit, retry_after=retry_after)
