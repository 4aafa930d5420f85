"""
Live update fan-out.

Handlers call the event helpers below after a mutation; the helpers build the
payload and hand it to the configured ``Notifier``. The socket gateway that owns
client connections subscribes to the rooms on the other side of the transport.

Backends (``settings.NOTIFIER_BACKEND``):

- ``core.notifications.RedisNotifier``: publishes to Redis pub/sub channel
  ``{NOTIFIER_CHANNEL_PREFIX}{room}``.
- ``core.notifications.LoggingNotifier``: logs each event; the default without Redis.
- ``core.notifications.LocMemNotifier``: appends to ``core.notifications.outbox`` for tests.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Optional, Protocol

import orjson
import redis
from django.conf import settings
from django.utils import timezone
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

outbox: list[dict[str, Any]] = []


class Notifier(Protocol):
    def notify(self, event: str, room: str, payload: dict[str, Any]) -> None: ...


def project_room(project_id) -> str:
    return f"project:{project_id}"


def user_room(user_id) -> str:
    return f"user:{user_id}"


class RedisNotifier:
    def __init__(self, url: Optional[str] = None, channel_prefix: Optional[str] = None):
        self.client = redis.Redis.from_url(
            url or settings.REDIS_URL,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )
        self.channel_prefix = channel_prefix if channel_prefix is not None else settings.NOTIFIER_CHANNEL_PREFIX

    def notify(self, event, room, payload):
        message = orjson.dumps({"event": event, "room": room, "payload": payload}, default=str)
        try:
            self.client.publish(f"{self.channel_prefix}{room}", message)
        except redis.RedisError as exc:
            logger.error("notify failed event=%s room=%s error=%s", event, room, exc, extra={"event": event, "room": room})


class LoggingNotifier:
    def notify(self, event, room, payload):
        logger.info("notify event=%s room=%s", event, room, extra={"event": event, "room": room})


class LocMemNotifier:
    def notify(self, event, room, payload):
        outbox.append({"event": event, "room": room, "payload": payload})


@lru_cache(maxsize=None)
def _load_notifier(path: str) -> Notifier:
    return import_string(path)()


def get_notifier() -> Notifier:
    return _load_notifier(settings.NOTIFIER_BACKEND)


def emit(event: str, room: str, payload: dict[str, Any], notifier: Optional[Notifier] = None) -> None:
    """Publish one event; fan-out failures never reach the request."""
    try:
        (notifier or get_notifier()).notify(event, room, payload)
    except Exception:
        logger.exception("notify failed event=%s room=%s", event, room, extra={"event": event, "room": room})


# Payload builders

def event_user(user) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def emit_task_created(task, created_by):
    emit("task_created", project_room(task.project_id), {
        "task": {
            "id": task.id,
            "title": task.title,
            "status": task.status,
            "priority": task.priority,
            "assignee_id": task.assignee_id,
        },
        "project_id": task.project_id,
        "created_by": event_user(created_by),
        "timestamp": timezone.now().isoformat(),
    })


def emit_task_updated(task, updated_by, changes):
    """changes: list of {"field", "old_value", "new_value"} dicts."""
    now = timezone.now().isoformat()
    emit("task_updated", project_room(task.project_id), {
        "task_id": task.id,
        "project_id": task.project_id,
        "updated_by": event_user(updated_by),
        "changes": changes,
        "timestamp": now,
    })
    assignee_change = next((c for c in changes if c["field"] == "assignee_id"), None)
    if assignee_change and assignee_change["new_value"]:
        emit("task_assigned_to_you", user_room(assignee_change["new_value"]), {
            "task_id": task.id,
            "task_title": task.title,
            "project_id": task.project_id,
            "assigned_by": event_user(updated_by),
            "timestamp": now,
        })


def emit_task_assignment(task, assigned_by, assignee):
    now = timezone.now().isoformat()
    emit("task_assignment_changed", project_room(task.project_id), {
        "task_id": task.id,
        "project_id": task.project_id,
        "task_title": task.title,
        "assigned_by": event_user(assigned_by),
        "assigned_to": event_user(assignee) if assignee else None,
        "timestamp": now,
    })
    if assignee:
        emit("task_assigned_to_you", user_room(assignee.id), {
            "task_id": task.id,
            "task_title": task.title,
            "project_id": task.project_id,
            "assigned_by": event_user(assigned_by),
            "timestamp": now,
        })


def emit_task_deleted(task_id, project_id, deleted_by):
    emit("task_deleted", project_room(project_id), {
        "task_id": task_id,
        "project_id": project_id,
        "deleted_by": event_user(deleted_by),
        "timestamp": timezone.now().isoformat(),
    })


def _comment_payload(comment, project_id):
    return {
        "comment_id": comment.id,
        "task_id": comment.task_id,
        "project_id": project_id,
        "author": {
            "id": comment.user.id,
            "username": comment.user.username,
            "first_name": comment.user.first_name,
            "last_name": comment.user.last_name,
            "avatar": comment.user.avatar,
        },
        "content": comment.content,
    }


def emit_new_comment(comment, project_id):
    payload = _comment_payload(comment, project_id)
    payload["timestamp"] = comment.created_at.isoformat()
    emit("new_comment", project_room(project_id), payload)


def emit_comment_updated(comment, project_id):
    payload = _comment_payload(comment, project_id)
    payload["timestamp"] = comment.updated_at.isoformat()
    emit("comment_updated", project_room(project_id), payload)


def emit_comment_deleted(comment_id, task_id, project_id, deleted_by):
    emit("comment_deleted", project_room(project_id), {
        "comment_id": comment_id,
        "task_id": task_id,
        "deleted_by": event_user(deleted_by),
        "timestamp": timezone.now().isoformat(),
    })


def emit_member_added(member, added_by):
    now = timezone.now().isoformat()
    emit("member_added", project_room(member.project_id), {
        "project_id": member.project_id,
        "new_member": {"id": member.id, "role": member.role, "user": event_user(member.user)},
        "added_by": event_user(added_by),
        "timestamp": now,
    })
    emit("added_to_project", user_room(member.user_id), {
        "project_id": member.project_id,
        "added_by": event_user(added_by),
        "role": member.role,
        "timestamp": now,
    })


def emit_member_role_updated(member, updated_by):
    emit("member_role_updated", project_room(member.project_id), {
        "project_id": member.project_id,
        "user_id": member.user_id,
        "role": member.role,
        "updated_by": event_user(updated_by),
        "timestamp": timezone.now().isoformat(),
    })


def emit_member_removed(project_id, user_id, removed_by):
    now = timezone.now().isoformat()
    payload = {
        "project_id": project_id,
        "user_id": user_id,
        "removed_by": event_user(removed_by),
        "timestamp": now,
    }
    emit("member_removed", project_room(project_id), payload)
    emit("member_removed", user_room(user_id), payload)
