import logging
import re
import time
import warnings
from unittest.mock import MagicMock

import pytest
from django.core.cache import caches
from django.core.cache.backends.base import CacheKeyWarning

from core.cache import (
    INDEX_PREFIX,
    MISS,
    CacheLayer,
    CacheTTL,
    collection_of,
    get_cache,
    invalidate_task_caches,
    project_tasks_key,
    query_signature,
    redis_scanner,
    task_details_key,
    user_profile_key,
    user_projects_key,
)


class BrokenBackend:
    """Cache backend whose every call fails, like an unreachable Redis."""

    def get(self, key, default=None):
        raise ConnectionError("cache down")

    def set(self, key, value, timeout=None):
        raise ConnectionError("cache down")

    def delete(self, key):
        raise ConnectionError("cache down")

    def delete_many(self, keys):
        raise ConnectionError("cache down")


@pytest.fixture
def layer():
    backend = caches["default"]
    backend.clear()
    return CacheLayer(backend)


def test_get_set_and_miss(layer):
    assert layer.get("task:details:1") is MISS
    layer.set("task:details:1", {"title": "a"}, CacheTTL.SHORT)
    assert layer.get("task:details:1") == {"title": "a"}
    layer.delete("task:details:1")
    assert layer.get("task:details:1") is MISS


def test_falsy_values_are_hits(layer):
    layer.set("user:profile:9", {}, CacheTTL.LONG)
    assert layer.get("user:profile:9") == {}


def test_delete_by_prefix_only_touches_matching_keys(layer):
    layer.set(user_projects_key(1, "page=1"), "u1p1")
    layer.set(user_projects_key(1, "page=2"), "u1p2")
    layer.set(user_projects_key(2, "page=1"), "u2p1")
    layer.set(user_profile_key(1), "profile")

    assert layer.delete_by_prefix("user:projects:1:") == 2
    assert layer.get(user_projects_key(1, "page=1")) is MISS
    assert layer.get(user_projects_key(1, "page=2")) is MISS
    assert layer.get(user_projects_key(2, "page=1")) == "u2p1"
    assert layer.get(user_profile_key(1)) == "profile"

    assert layer.delete_by_prefix("user:projects:") == 1
    assert layer.get(user_projects_key(2, "page=1")) is MISS
    assert layer.delete_by_prefix("user:projects:") == 0


def test_get_or_load_caches_loader_result(layer):
    calls = []

    def loader():
        calls.append(1)
        return {"id": 5}

    assert layer.get_or_load("task:details:5", loader) == {"id": 5}
    assert layer.get_or_load("task:details:5", loader) == {"id": 5}
    assert len(calls) == 1


def test_broken_backend_degrades_to_miss(caplog):
    layer = CacheLayer(BrokenBackend())
    with caplog.at_level(logging.WARNING, logger="core.cache"):
        assert layer.get("task:details:1") is MISS
        layer.set("task:details:1", "value")
        layer.delete("task:details:1")
        assert layer.delete_by_prefix("user:projects:") == 0
        assert layer.get_or_load("task:details:1", lambda: "fresh") == "fresh"
    assert any("cache get failed" in r.getMessage() for r in caplog.records)
    assert any("cache prefix delete failed" in r.getMessage() for r in caplog.records)


def test_collection_of():
    assert collection_of("user:projects:7:page=1") == "user:projects:"
    assert collection_of("task:details:3") == "task:details:"
    with pytest.raises(ValueError):
        collection_of("nocolon")


def test_query_signature_is_order_independent_and_key_safe():
    assert query_signature(page=1, limit=10) == query_signature(limit=10, page=1)
    assert query_signature(page=1) != query_signature(page=2)
    signature = query_signature(search="two words\n\tand control chars", page=1)
    assert re.fullmatch(r"[0-9a-f]{32}", signature)

    with warnings.catch_warnings():
        warnings.simplefilter("error", CacheKeyWarning)
        caches["default"].validate_key(project_tasks_key(1, signature))


def test_task_invalidation_removes_details_project_lists_and_user_project_lists(layer):
    layer.set(task_details_key(3), "old task")
    layer.set(task_details_key(4), "other task")
    layer.set(project_tasks_key(10, "page=1"), "project 10 tasks")
    layer.set(project_tasks_key(11, "page=1"), "project 11 tasks")
    layer.set(user_projects_key(1, "page=1"), "u1")
    layer.set(user_projects_key(2, "page=1"), "u2")

    invalidate_task_caches(3, 10, cache=layer)

    assert layer.get(task_details_key(3)) is MISS
    assert layer.get(project_tasks_key(10, "page=1")) is MISS
    assert layer.get(user_projects_key(1, "page=1")) is MISS
    assert layer.get(user_projects_key(2, "page=1")) is MISS
    assert layer.get(task_details_key(4)) == "other task"
    assert layer.get(project_tasks_key(11, "page=1")) == "project 11 tasks"


@pytest.mark.django_db
def test_task_save_invalidates_cached_detail(make_user):
    from projects.models import Project
    from tasks.models import Task

    owner = make_user()
    project = Project.objects.create(name="P", owner=owner)
    task = Task.objects.create(title="Before", project=project, created_by=owner)
    cache = get_cache()
    cache.set(task_details_key(task.id), {"title": "Before"}, CacheTTL.SHORT)
    cache.set(user_projects_key(owner.id, "page=1"), ["stale"], CacheTTL.MEDIUM)

    task.title = "After"
    task.save()

    assert cache.get(task_details_key(task.id)) is MISS
    assert cache.get(user_projects_key(owner.id, "page=1")) is MISS
    loaded = cache.get_or_load(task_details_key(task.id), lambda: {"title": Task.objects.get(id=task.id).title})
    assert loaded == {"title": "After"}


def test_index_prunes_expired_keys(layer, monkeypatch):
    clock = [1_000_000.0]
    monkeypatch.setattr(time, "time", lambda: clock[0])
    for page in range(200):
        layer.set(project_tasks_key(1, f"p{page}"), "tasks", ttl=1)
    index_key = INDEX_PREFIX + "project:tasks:"
    assert len(layer.backend.get(index_key)) == 200

    clock[0] += 5
    layer.set(project_tasks_key(1, "fresh"), "tasks", ttl=CacheTTL.SHORT)

    assert list(layer.backend.get(index_key)) == [project_tasks_key(1, "fresh")]
    assert layer.delete_by_prefix("project:tasks:1:") == 1


def test_single_entity_collections_are_not_indexed(layer):
    for task_id in range(50):
        layer.set(task_details_key(task_id), {"id": task_id}, ttl=1)
    layer.set(user_profile_key(1), {"id": 1})
    assert layer.backend.get(INDEX_PREFIX + "task:details:") is None
    assert layer.backend.get(INDEX_PREFIX + "user:profile:") is None


def test_delete_many(layer):
    layer.set(task_details_key(1), "a")
    layer.set(task_details_key(2), "b")
    layer.set(task_details_key(3), "c")
    layer.delete_many([task_details_key(1), task_details_key(2)])
    layer.delete_many([])
    assert layer.get(task_details_key(1)) is MISS
    assert layer.get(task_details_key(2)) is MISS
    assert layer.get(task_details_key(3)) == "c"


def test_redis_prefix_delete_scans_matching_keys():
    backend = MagicMock()
    backend.make_key.side_effect = lambda key: f"taskflow:1:{key}"
    scanner = MagicMock()
    scanner.scan.side_effect = [
        (17, [b"taskflow:1:user:projects:4:a", b"taskflow:1:user:projects:4:b"]),
        (0, [b"taskflow:1:user:projects:4:c"]),
    ]
    scanner.delete.side_effect = lambda *keys: len(keys)
    layer = CacheLayer(backend, scanner=scanner)

    assert layer.delete_by_prefix("user:projects:4:") == 3

    first, second = scanner.scan.call_args_list
    assert first.args == (0,)
    assert first.kwargs == {"match": "taskflow:1:user:projects:4:*", "count": 100}
    assert second.args == (17,)
    assert scanner.delete.call_count == 2


def test_redis_backed_layer_skips_key_index():
    backend = MagicMock()
    layer = CacheLayer(backend, scanner=MagicMock())
    layer.set(project_tasks_key(1, "sig"), "tasks", ttl=CacheTTL.SHORT)
    backend.set.assert_called_once_with(project_tasks_key(1, "sig"), "tasks", timeout=CacheTTL.SHORT)
    backend.get.assert_not_called()


def test_get_cache_uses_scanner_only_for_redis(settings):
    assert get_cache().scanner is None
    settings.CACHES = {
        **settings.CACHES,
        "shared": {"BACKEND": "django.core.cache.backends.redis.RedisCache", "LOCATION": "redis://cache:6379/1"},
    }
    assert redis_scanner("shared") is not None
    assert redis_scanner("shared") is redis_scanner("shared")
    assert redis_scanner("default") is None
