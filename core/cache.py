"""
Advisory cache for read-heavy endpoints.

Keys follow ``{entity}:{subtype}:{id}`` (list keys append a query signature after
the id). Every backend call is guarded: a failing cache degrades to a miss and a
log line, never to a failed request.

Prefix deletion on Redis scans the keyspace with ``SCAN MATCH`` and deletes what it
finds. Process-local backends (locmem in development and tests) have no key
listing, so keys of the list collections in ``INDEXED_COLLECTIONS`` are recorded in
an index entry holding each key's expiry; expired entries are pruned on every write.
"""
from __future__ import annotations

import hashlib
import logging
import threading
import time
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional, Protocol

import redis
from django.conf import settings
from django.core.cache import caches

logger = logging.getLogger(__name__)

MISS = object()


class CacheKeys:
    USER_PROJECTS = "user:projects:"
    USER_PROFILE = "user:profile:"
    PROJECT_TASKS = "project:tasks:"
    PROJECT_MEMBERS = "project:members:"
    TASK_DETAILS = "task:details:"


class CacheTTL:
    SHORT = 5 * 60
    MEDIUM = 15 * 60
    LONG = 60 * 60


INDEX_PREFIX = "keyindex:"
# Only list collections are ever deleted by prefix; single-entity keys are deleted by name
INDEXED_COLLECTIONS = (CacheKeys.USER_PROJECTS, CacheKeys.PROJECT_TASKS)
SCAN_BATCH = 100
REDIS_CACHE_BACKEND = "django.core.cache.backends.redis.RedisCache"


class CacheBackend(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any, timeout: Optional[int] = None) -> None: ...

    def delete(self, key: str) -> Any: ...

    def delete_many(self, keys: Iterable[str]) -> Any: ...


def collection_of(key: str) -> str:
    """Return the ``entity:subtype:`` collection a key or prefix belongs to."""
    parts = key.split(":")
    if len(parts) < 3 or not parts[0] or not parts[1]:
        raise ValueError(f"Cache key '{key}' does not name a collection")
    return f"{parts[0]}:{parts[1]}:"


class CacheLayer:
    """
    Wraps a Django cache backend.

    ``scanner`` is a redis client pointing at the same server as ``backend``; when
    given, prefix deletes use SCAN instead of the key index.
    """

    # The index lives in a process-local backend, so a process-level lock covers it
    _index_lock = threading.Lock()

    def __init__(self, backend: CacheBackend, scanner=None):
        self.backend = backend
        self.scanner = scanner

    def get(self, key: str) -> Any:
        try:
            value = self.backend.get(key, MISS)
        except Exception as exc:
            logger.warning("cache get failed key=%s error=%s", key, exc, extra={"key": key})
            return MISS
        return value

    def set(self, key: str, value: Any, ttl: int = CacheTTL.MEDIUM) -> None:
        try:
            self.backend.set(key, value, timeout=ttl)
            if self.scanner is None and collection_of(key) in INDEXED_COLLECTIONS:
                self._index_add(key, ttl)
        except Exception as exc:
            logger.warning("cache set failed key=%s error=%s", key, exc, extra={"key": key})

    def delete(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception as exc:
            logger.warning("cache delete failed key=%s error=%s", key, exc, extra={"key": key})

    def delete_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        try:
            self.backend.delete_many(keys)
        except Exception as exc:
            logger.warning("cache delete_many failed count=%s error=%s", len(keys), exc)

    def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; returns how many were removed."""
        try:
            if self.scanner is not None:
                count = self._scan_delete(prefix)
            else:
                count = self._index_delete(prefix)
            logger.debug("cache prefix delete prefix=%s count=%s", prefix, count, extra={"prefix": prefix})
            return count
        except Exception as exc:
            logger.warning("cache prefix delete failed prefix=%s error=%s", prefix, exc, extra={"prefix": prefix})
            return 0

    def get_or_load(self, key: str, loader, ttl: int = CacheTTL.MEDIUM) -> Any:
        """Return the cached value for key, or call loader() and cache what it returns."""
        value = self.get(key)
        if value is not MISS:
            return value
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def _scan_delete(self, prefix: str) -> int:
        # Keys in Redis carry the backend's KEY_PREFIX and version
        pattern = self.backend.make_key(prefix) + "*"
        deleted = 0
        cursor = 0
        while True:
            cursor, keys = self.scanner.scan(cursor, match=pattern, count=SCAN_BATCH)
            if keys:
                deleted += self.scanner.delete(*keys)
            if cursor == 0:
                return deleted

    def _index_add(self, key: str, ttl: int) -> None:
        index_key = INDEX_PREFIX + collection_of(key)
        now = time.time()
        with self._index_lock:
            indexed: Dict[str, float] = self.backend.get(index_key) or {}
            indexed = {k: exp for k, exp in indexed.items() if exp > now}
            indexed[key] = now + ttl
            self.backend.set(index_key, indexed, timeout=int(max(indexed.values()) - now) + 1)

    def _index_delete(self, prefix: str) -> int:
        index_key = INDEX_PREFIX + collection_of(prefix)
        now = time.time()
        with self._index_lock:
            indexed: Dict[str, float] = self.backend.get(index_key) or {}
            live = {k: exp for k, exp in indexed.items() if exp > now}
            doomed = [k for k in live if k.startswith(prefix)]
            if doomed:
                self.backend.delete_many(doomed)
            remaining = {k: exp for k, exp in live.items() if not k.startswith(prefix)}
            if remaining:
                self.backend.set(index_key, remaining, timeout=int(max(remaining.values()) - now) + 1)
            elif indexed:
                self.backend.delete(index_key)
        return len(doomed)


def redis_scanner(alias: str):
    """Redis client for the cache alias when it uses Django's RedisCache, else None."""
    config = settings.CACHES.get(alias, {})
    if config.get("BACKEND") != REDIS_CACHE_BACKEND:
        return None
    location = config["LOCATION"]
    if not isinstance(location, str):
        location = ",".join(location)
    return _redis_client(location)


@lru_cache(maxsize=None)
def _redis_client(location: str):
    # Writes go to the first server listed
    return redis.Redis.from_url(location.split(",")[0])


def get_cache() -> CacheLayer:
    """Cache layer over the configured Django cache alias."""
    alias = getattr(settings, "TASKFLOW_CACHE_ALIAS", "default")
    return CacheLayer(caches[alias], scanner=redis_scanner(alias))


# Key builders

def user_projects_prefix(user_id) -> str:
    return f"{CacheKeys.USER_PROJECTS}{user_id}:"


def user_projects_key(user_id, signature: str) -> str:
    return f"{user_projects_prefix(user_id)}{signature}"


def user_profile_key(user_id) -> str:
    return f"{CacheKeys.USER_PROFILE}{user_id}"


def project_tasks_prefix(project_id) -> str:
    return f"{CacheKeys.PROJECT_TASKS}{project_id}:"


def project_tasks_key(project_id, signature: str) -> str:
    return f"{project_tasks_prefix(project_id)}{signature}"


def project_members_key(project_id) -> str:
    return f"{CacheKeys.PROJECT_MEMBERS}{project_id}"


def task_details_key(task_id) -> str:
    return f"{CacheKeys.TASK_DETAILS}{task_id}"


def query_signature(**params) -> str:
    """Order-independent digest of list query parameters, safe to embed in a key."""
    rendered = "&".join(f"{k}={'' if v is None else v}" for k, v in sorted(params.items()))
    return hashlib.md5(rendered.encode("utf-8")).hexdigest()


# Invalidation policy

def invalidate_user_caches(user_id, cache: Optional[CacheLayer] = None) -> None:
    cache = cache or get_cache()
    cache.delete(user_profile_key(user_id))
    cache.delete_by_prefix(user_projects_prefix(user_id))


def invalidate_user_brief_caches(user_id, task_refs: Iterable[tuple], cache: Optional[CacheLayer] = None) -> None:
    """
    Drop cached payloads that embed the user's brief (name, username, avatar).

    task_refs holds (task_id, project_id) for tasks the user created or is assigned to.
    Project lists of every user may show them as owner or member.
    """
    cache = cache or get_cache()
    cache.delete(user_profile_key(user_id))
    cache.delete_by_prefix(CacheKeys.USER_PROJECTS)
    task_refs = list(task_refs)
    cache.delete_many(task_details_key(task_id) for task_id, _ in task_refs)
    for project_id in {project_id for _, project_id in task_refs}:
        cache.delete_by_prefix(project_tasks_prefix(project_id))


def invalidate_project_caches(project_id, task_ids: Iterable = (), cache: Optional[CacheLayer] = None) -> None:
    """task_ids are the project's tasks, whose cached details embed the project brief."""
    cache = cache or get_cache()
    cache.delete(project_members_key(project_id))
    cache.delete_by_prefix(project_tasks_prefix(project_id))
    cache.delete_many(task_details_key(task_id) for task_id in task_ids)
    # Member counts and visibility of every user's project list may change
    cache.delete_by_prefix(CacheKeys.USER_PROJECTS)


def invalidate_membership_caches(project_id, cache: Optional[CacheLayer] = None) -> None:
    cache = cache or get_cache()
    cache.delete(project_members_key(project_id))
    cache.delete_by_prefix(CacheKeys.USER_PROJECTS)


def invalidate_task_caches(task_id, project_id, cache: Optional[CacheLayer] = None) -> None:
    cache = cache or get_cache()
    cache.delete(task_details_key(task_id))
    cache.delete_by_prefix(project_tasks_prefix(project_id))
    # Task counts are embedded in project lists
    cache.delete_by_prefix(CacheKeys.USER_PROJECTS)


def invalidate_comment_caches(task_id, project_id, cache: Optional[CacheLayer] = None) -> None:
    """Task details and project task lists embed the comment count."""
    cache = cache or get_cache()
    cache.delete(task_details_key(task_id))
    if project_id is not None:
        cache.delete_by_prefix(project_tasks_prefix(project_id))
