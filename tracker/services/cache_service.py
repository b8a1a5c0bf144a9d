"""
Group detail cache.

Phase-two group expansion (the job rows of one bucket) is the expensive
read of the worklist, and users open the same groups again and again.
Results are cached per project under

    groups:<project_id>:<fingerprint of key chain + path + view state>

and every key of a project is dropped as soon as one of its jobs or
elements changes. Redis is used when ``REDIS_URL`` points at a reachable
server; otherwise a process-local TTL dict stands in.
"""

import fnmatch
import hashlib
import json
import logging
import os
import threading
import time

logger = logging.getLogger(__name__)

GROUP_TTL = int(os.getenv("GROUP_CACHE_TTL", "120"))
KEY_PREFIX = "groups"


class _MemoryBackend:
    """The subset of the redis client API the cache uses."""

    def __init__(self):
        self._data: dict = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.monotonic() > expires_at:
                del self._data[key]
                return None
            return value

    def setex(self, key, ttl_seconds, value):
        with self._lock:
            self._data[key] = (value, time.monotonic() + ttl_seconds)

    def delete(self, *keys):
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def scan_iter(self, match="*"):
        with self._lock:
            return [k for k in self._data if fnmatch.fnmatchcase(k, match)]

    def flushdb(self):
        with self._lock:
            self._data.clear()

    def ping(self):
        return True


_backend = None


def _get_backend():
    global _backend
    if _backend is not None:
        return _backend

    url = os.getenv("REDIS_URL", "")
    if url.startswith(("redis://", "rediss://")):
        try:
            import redis
            client = redis.from_url(url, decode_responses=True, socket_timeout=2)
            client.ping()
            _backend = client
            logger.info("Group cache: Redis at %s", url.split("@")[-1])
            return _backend
        except Exception as exc:
            logger.warning("Group cache: Redis unavailable (%s); using memory", exc)
    _backend = _MemoryBackend()
    return _backend


def fingerprint(payload) -> str:
    """Stable short hash of a JSON-able request payload."""
    raw = json.dumps(payload, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def group_detail_key(project_id, payload) -> str:
    return f"{KEY_PREFIX}:{project_id}:{fingerprint(payload)}"


def get_cached(key, ttl=GROUP_TTL, loader=None):
    """Cache-aside read: return the stored value, else ``loader()`` stored for *ttl* seconds."""
    backend = _get_backend()
    raw = backend.get(key)
    if raw is not None:
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable cache entry %s", key)
            backend.delete(key)
    if loader is None:
        return None
    value = loader()
    if value is not None:
        backend.setex(key, ttl, json.dumps(value, default=str))
    return value


def invalidate_project(project_id):
    backend = _get_backend()
    keys = list(backend.scan_iter(match=f"{KEY_PREFIX}:{project_id}:*"))
    if keys:
        backend.delete(*keys)
        logger.debug("Dropped %d cached group(s)", len(keys), extra={"project_id": project_id})


def clear_all():
    """Flush the whole cache backend (tests)."""
    _get_backend().flushdb()


def health_check():
    try:
        backend = _get_backend()
        backend.ping()
    except Exception as exc:
        return {"status": "error", "detail": str(exc)}
    kind = "memory" if isinstance(backend, _MemoryBackend) else "redis"
    return {"status": "ok", "backend": kind}
