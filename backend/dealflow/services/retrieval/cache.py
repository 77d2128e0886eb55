from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Optional

import redis

from dealflow.config import Settings, get_settings

logger = logging.getLogger(__name__)


class SearchCache:
    """Short-lived redis cache for candidate searches. Cache failures never fail a search."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self._client = redis.Redis.from_url(settings.redis_url, decode_responses=True)

    @staticmethod
    def _key(namespace: str, payload: str) -> str:
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        return f"dealflow:{namespace}:{digest}"

    def get_json(self, namespace: str, payload: str) -> Optional[Any]:
        key = self._key(namespace, payload)
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning("Search cache read failed: %s", exc)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set_json(self, namespace: str, payload: str, value: Any, ttl_seconds: int) -> None:
        key = self._key(namespace, payload)
        try:
            self._client.setex(key, max(1, int(ttl_seconds)), json.dumps(value))
        except redis.RedisError as exc:
            logger.warning("Search cache write failed: %s", exc)
