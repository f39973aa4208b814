"""Look-aside cache in front of read queries.

The cache is an accelerator only. Every Redis failure is logged and treated as
a miss (reads) or a no-op (writes), so callers always fall back to the
database.
"""
from __future__ import annotations

import json
import logging
from typing import Any

import redis

from welfare_portal.config import Settings

logger = logging.getLogger(__name__)

DEPARTMENTS = 'departments'
DEPARTMENT = 'department'
ITEM_TYPES = 'item-types'
ITEM_TYPE = 'item-type'
USERS = 'users'
USER = 'user'
WELFARE_RECORDS = 'welfare-records'
WELFARE_RECORD = 'welfare-record'
STATUS_LOGS = 'status-logs'


def _segment(part: Any) -> str:
    if part is None:
        return ''
    if isinstance(part, bool):
        value = 'true' if part else 'false'
    elif hasattr(part, 'isoformat'):
        value = part.isoformat()
    elif hasattr(part, 'value'):
        value = str(part.value)
    else:
        value = str(part)
    return value.replace('%', '%25').replace(':', '%3A')


def cache_key(namespace: str, *parts: Any) -> str:
    return ':'.join([namespace, *(_segment(part) for part in parts)])


def namespace_pattern(namespace: str, *parts: Any) -> str:
    """Wildcard matching every key under ``namespace`` (and optional leading parts)."""
    return cache_key(namespace, *parts, '') + '*'


class CacheGateway:
    def __init__(self, client: redis.Redis | None) -> None:
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def get(self, key: str) -> Any | None:
        if self._client is None:
            return None
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning('Cache get failed for %s: %s', key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning('Discarding undecodable cache entry %s', key)
            return None

    def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        if self._client is None:
            return
        try:
            self._client.set(key, json.dumps(value), ex=ttl_seconds)
        except redis.RedisError as exc:
            logger.warning('Cache put failed for %s: %s', key, exc)

    def delete(self, key: str) -> None:
        if self._client is None:
            return
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            logger.warning('Cache delete failed for %s: %s', key, exc)

    def delete_by_pattern(self, pattern: str) -> int:
        if self._client is None:
            return 0
        try:
            keys = list(self._client.scan_iter(match=pattern, count=500))
            if not keys:
                return 0
            return int(self._client.delete(*keys))
        except redis.RedisError as exc:
            logger.warning('Cache delete by pattern failed for %s: %s', pattern, exc)
            return 0


def build_cache(settings: Settings) -> CacheGateway:
    if not settings.redis_url.strip():
        logger.info('REDIS_URL is empty; caching disabled')
        return CacheGateway(None)
    client = redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )
    return CacheGateway(client)
