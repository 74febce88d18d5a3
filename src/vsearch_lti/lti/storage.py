"""
Redis-backed storage.

``RedisLaunchDataStorage`` keeps pylti1p3 nonces, state and launch data with
TTL expiry.  ``RedisPlatformStore`` is the platform trust store: one JSON
record per platform URL, written at most once.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pylti1p3.launch_data_storage.base import LaunchDataStorage

from .models import PlatformRegistration

logger = logging.getLogger(__name__)


def redis_client_from_url(redis_url: str):
    """Sync client; pylti1p3 is sync."""
    import redis as sync_redis

    return sync_redis.Redis.from_url(redis_url, decode_responses=True)


class RedisLaunchDataStorage(LaunchDataStorage):
    """Stores LTI launch data in Redis with automatic expiry."""

    _PREFIX = "lti1p3:"
    _DEFAULT_TTL = 7200  # 2 hours

    def __init__(self, redis_client, default_ttl: int | None = None):
        super().__init__()
        self._redis = redis_client
        self._default_ttl = default_ttl or self._DEFAULT_TTL

    def can_set_keys_expiration(self) -> bool:
        return True

    def _prepare_key(self, key: str) -> str:
        return f"{self._PREFIX}{key}"

    def get_value(self, key: str) -> Optional[Any]:
        value = self._redis.get(self._prepare_key(key))
        if not value:
            return None
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding unreadable launch value for key %s", key)
            return None

    def set_value(self, key: str, value: Any, exp: Optional[int] = None) -> None:
        self._redis.setex(self._prepare_key(key), exp or self._default_ttl, json.dumps(value))

    def check_value(self, key: str) -> bool:
        return bool(self._redis.exists(self._prepare_key(key)))


class RedisPlatformStore:
    """Platform trust store keyed by platform URL.

    Records are never updated or deleted from here.  ``register_platform``
    uses ``SET NX`` so two processes bootstrapping the same URL end up with
    a single record.
    """

    _PREFIX = "platform:"

    def __init__(self, redis_client, logger: logging.Logger | None = None):
        self._redis = redis_client
        self._log = logger or logging.getLogger(__name__)

    def _key(self, url: str) -> str:
        return f"{self._PREFIX}{url}"

    def get_platform(self, url: str) -> PlatformRegistration | None:
        raw = self._redis.get(self._key(url))
        if raw is None:
            return None
        return PlatformRegistration.model_validate_json(raw)

    def register_platform(self, registration: PlatformRegistration) -> PlatformRegistration:
        """Store *registration* unless the URL is already taken.

        Returns the record that ends up stored, which is the existing one when
        another writer got there first.
        """
        created = self._redis.set(
            self._key(registration.url), registration.model_dump_json(), nx=True
        )
        if created:
            return registration

        self._log.info("Platform %s was registered concurrently; keeping stored record", registration.url)
        existing = self.get_platform(registration.url)
        return existing if existing is not None else registration

    def list_platforms(self) -> list[PlatformRegistration]:
        platforms = []
        for key in sorted(self._redis.scan_iter(match=f"{self._PREFIX}*")):
            raw = self._redis.get(key)
            if raw:
                platforms.append(PlatformRegistration.model_validate_json(raw))
        return platforms
