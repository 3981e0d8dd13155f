import logging
import threading
from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis as _redis

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()

# Initialized lazily in create_app
redis_client: _redis.Redis = None  # type: ignore

_local_lock = threading.Lock()

STORE_LOCK_KEY = "rapid_listing:store"


def init_redis(app):
    global redis_client
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not set, using in-process store lock")
        redis_client = None
        return

    try:
        redis_client = _redis.from_url(redis_url, decode_responses=False)
        redis_client.ping()
    except Exception as e:
        logger.warning("Redis connection failed (%s), using in-process store lock", e)
        redis_client = None


@contextmanager
def store_lock(timeout=30):
    """Serialize store writes across workers.

    Uses a Redis lock when Redis is available so multiple gunicorn workers
    share one writer; otherwise falls back to a process-local lock.
    """
    if redis_client is None:
        with _local_lock:
            yield
        return

    lock = redis_client.lock(STORE_LOCK_KEY, timeout=timeout, blocking_timeout=timeout)
    if not lock.acquire():
        raise RuntimeError("Timed out waiting for the store lock")
    try:
        yield
    finally:
        try:
            lock.release()
        except _redis.exceptions.LockError:
            logger.warning("Store lock expired before release")
