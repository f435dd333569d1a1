import json
import logging
from typing import Any, Optional

import redis

from quizgate.core.config import Settings, settings

logger = logging.getLogger(__name__)


def make_redis_client(url: Optional[str] = None) -> redis.Redis:
    return redis.Redis.from_url(url or settings.REDIS_URL, decode_responses=True)


def snapshot_key(quiz_id: str, version: int) -> str:
    return f"quiz:{quiz_id}:snapshot:{version}"


class SnapshotCache:
    """Read-through cache for published snapshots.

    Snapshots never change once written, so entries only expire, they are
    never invalidated. Any redis failure is a cache miss.
    """

    def __init__(self, client: Any, ttl: int = settings.SNAPSHOT_CACHE_TTL):
        self.client = client
        self.ttl = ttl

    def get(self, quiz_id: str, version: int) -> Optional[dict]:
        try:
            raw = self.client.get(snapshot_key(quiz_id, version))
        except redis.RedisError as e:
            logger.warning(f"Snapshot cache get error: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Discarding unreadable cached snapshot {quiz_id}@{version}")
            return None

    def set(self, quiz_id: str, version: int, body: dict) -> bool:
        try:
            return bool(self.client.set(snapshot_key(quiz_id, version), json.dumps(body), ex=self.ttl))
        except redis.RedisError as e:
            logger.warning(f"Snapshot cache set error: {e}")
            return False


def default_snapshot_cache(cfg: Optional[Settings] = None) -> Optional[SnapshotCache]:
    """The snapshot cache the settings ask for, or None when it is disabled."""
    cfg = cfg or settings
    if not cfg.SNAPSHOT_CACHE_ENABLED:
        return None
    return SnapshotCache(make_redis_client(cfg.REDIS_URL), ttl=cfg.SNAPSHOT_CACHE_TTL)
