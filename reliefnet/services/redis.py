# SPDX-License-Identifier: Apache-2.0

"""
Redis service for the batch run lock and analytics caching.

This module provides Redis operations using the Upstash HTTP client for
serverless compatibility. Cache helpers fail gracefully; callers fall back to
recomputation whenever Redis is unavailable.
"""

import os
import json
import time
import uuid
from typing import Optional, List, Dict, Any, Union
from upstash_redis import Redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


BATCH_LOCK_KEY = "reliefnet:lock:batch_allocation"
ANALYTICS_CACHE_KEY = "reliefnet:analytics:matching"

# Delete the lock only if it still holds our token
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service with Upstash HTTP client for serverless compatibility.

    Provides the distributed batch allocation lock, analytics caching and
    general key/value helpers.
    """

    def __init__(self, redis_url: Optional[str] = None, redis_token: Optional[str] = None, client=None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Upstash Redis HTTP URL
            redis_token: Upstash Redis authentication token
            client: Pre-built client, skips environment configuration
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self.redis_token = redis_token or os.getenv("REDIS_TOKEN")
        self._configured = client is not None or bool(self.redis_url)

        if client is not None:
            self.client = client
            return

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, Redis operations will be disabled")
            self.client = None
            return

        try:
            if self.redis_token:
                self.client = Redis(url=self.redis_url, token=self.redis_token)
            else:
                self.client = Redis.from_env()

            self._test_connection()

            logger.info("Redis service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        """Test Redis connection."""
        if not self.client:
            return

        try:
            result = self.client.ping()
            if result != "PONG":
                raise RedisConnectionError("Redis ping failed")
        except Exception as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def is_configured(self) -> bool:
        """Check if a Redis endpoint was configured, reachable or not."""
        return self._configured

    def _handle_redis_error(self, operation: str, error: Exception) -> None:
        """Handle Redis operation errors with logging."""
        logger.error(f"Redis {operation} failed: {str(error)}")

    def set_with_ttl(self, key: str, value: Union[str, Dict, List], ttl_seconds: int) -> bool:
        """
        Set a key-value pair with TTL.

        Args:
            key: Redis key
            value: Value to store (will be JSON serialized if not string)
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.set_with_ttl") as span:
            span.set_attributes({
                "redis.operation": "set_with_ttl",
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                result = self.client.setex(key, ttl_seconds, value)

                span.set_attribute("redis.result", "success")
                logger.debug(f"Redis SET successful: {key} (TTL: {ttl_seconds}s)")

                return result in (True, "OK")

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("SET", e)
                return False

    def get(self, key: str) -> Optional[str]:
        """
        Get value by key.

        Returns:
            Value as string or None if not found
        """
        if not self.is_available():
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attributes({
                "redis.operation": "get",
                "redis.key": key
            })

            try:
                result = self.client.get(key)

                span.set_attribute("redis.result", "hit" if result else "miss")
                logger.debug(f"Redis GET: {key} -> {'hit' if result else 'miss'}")

                return result

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("GET", e)
                return None

    def get_json(self, key: str) -> Optional[Union[Dict, List]]:
        """
        Get and deserialize JSON value by key.

        Returns:
            Deserialized JSON value or None if not found
        """
        value = self.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to deserialize JSON from Redis key {key}: {str(e)}")
            return None

    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if key was deleted, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attributes({
                "redis.operation": "delete",
                "redis.key": key
            })

            try:
                result = self.client.delete(key)

                span.set_attribute("redis.result", "success")
                logger.debug(f"Redis DELETE: {key} -> {result}")

                return result > 0

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("DELETE", e)
                return False

    # Distributed Lock Methods

    def acquire_lock(self, key: str, ttl_seconds: int) -> Optional[str]:
        """
        Try to take a lock with SET NX EX.

        The TTL bounds how long a crashed holder can block others.

        Args:
            key: Lock key
            ttl_seconds: Lock expiry in seconds

        Returns:
            Owner token when acquired, None when held elsewhere or on error
        """
        if not self.is_available():
            return None

        with tracer.start_as_current_span("redis.acquire_lock") as span:
            token = str(uuid.uuid4())
            span.set_attributes({
                "redis.operation": "acquire_lock",
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                result = self.client.set(key, token, ex=ttl_seconds, nx=True)
            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("SET NX", e)
                return None

            acquired = result in (True, "OK")
            span.set_attribute("redis.lock_acquired", acquired)

            if acquired:
                logger.debug(f"Redis lock acquired: {key} (TTL: {ttl_seconds}s)")
                return token

            logger.info(f"Redis lock already held: {key}")
            return None

    def release_lock(self, key: str, token: str) -> bool:
        """
        Release a lock only if it is still owned by token.

        Returns:
            True if the lock was deleted, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.release_lock") as span:
            span.set_attributes({
                "redis.operation": "release_lock",
                "redis.key": key
            })

            try:
                result = self.client.eval(RELEASE_LOCK_SCRIPT, keys=[key], args=[token])
            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("EVAL release_lock", e)
                return False

            released = bool(result)
            span.set_attribute("redis.lock_released", released)

            if not released:
                logger.warning(f"Redis lock {key} expired or was taken over before release")

            return released

    # Analytics Caching Methods

    def cache_analytics(self, analytics: Dict[str, Any], ttl_seconds: int = 60) -> bool:
        """
        Cache the matching analytics snapshot.

        Args:
            analytics: Serialized analytics
            ttl_seconds: Cache TTL (default: 1 minute)

        Returns:
            True if cached successfully, False otherwise
        """
        if not self.is_available():
            return False

        return self.set_with_ttl(ANALYTICS_CACHE_KEY, analytics, ttl_seconds)

    def get_cached_analytics(self) -> Optional[Dict[str, Any]]:
        """Get the cached matching analytics snapshot, if any."""
        if not self.is_available():
            return None

        return self.get_json(ANALYTICS_CACHE_KEY)

    def invalidate_analytics(self) -> bool:
        """Drop the cached analytics snapshot."""
        if not self.is_available():
            return False

        return self.delete(ANALYTICS_CACHE_KEY)

    # Health Check Methods

    def ping(self) -> bool:
        """
        Ping Redis server.

        Returns:
            True if ping successful, False otherwise
        """
        if not self.is_available():
            return False

        try:
            result = self.client.ping()
            return result == "PONG"
        except Exception as e:
            logger.error(f"Redis ping failed: {str(e)}")
            return False

    def health_check(self) -> Dict[str, Any]:
        """
        Perform Redis health check.

        Returns:
            Health check results
        """
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        start_time = time.time()
        healthy = self.ping()
        response_time = (time.time() - start_time) * 1000

        return {
            "status": "healthy" if healthy else "unhealthy",
            "response_time_ms": round(response_time, 2),
            "timestamp": time.time()
        }


def create_redis_service() -> RedisService:
    """Factory function to create Redis service from environment."""
    return RedisService()
