"""
Key/value backend selection for drafts and identity memory.

Uses Redis when REDIS_URL is set, otherwise a local SQLite file.
"""

import logging
import os
import urllib.parse
from typing import Optional

from redis import Redis
from redis.exceptions import RedisError

from pipeline.drafts import KeyValueStore, RedisKeyValueStore, SqliteKeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.join(os.getcwd(), "fvu_drafts.db")


def get_redis_client(redis_url: str) -> Redis:
    """Get Redis client connection from a redis:// URL."""
    # Format: redis://[:password@]host[:port][/db]
    parsed = urllib.parse.urlparse(redis_url)
    host = parsed.hostname or "localhost"
    port = parsed.port or 6379
    db = int(parsed.path.lstrip("/")) if parsed.path.lstrip("/") else 0
    if parsed.password:
        return Redis(host=host, port=port, db=db, password=parsed.password, decode_responses=True)
    return Redis(host=host, port=port, db=db, decode_responses=True)


def get_key_value_store(redis_url: Optional[str] = None, db_path: Optional[str] = None) -> KeyValueStore:
    """Redis-backed store if a URL is given (or REDIS_URL is set), else SQLite."""
    redis_url = redis_url or os.environ.get("REDIS_URL")
    if redis_url:
        try:
            client = get_redis_client(redis_url)
            client.ping()
            logger.info("Draft storage: Redis")
            return RedisKeyValueStore(client)
        except RedisError as e:
            logger.warning(f"⚠️ Redis unavailable, using SQLite for drafts: {e}")

    path = db_path or os.environ.get("DRAFT_DB_PATH") or DEFAULT_DB_PATH
    logger.info(f"Draft storage: SQLite at {path}")
    return SqliteKeyValueStore(path)
