import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from ninja import Query, Router
from ninja.errors import HttpError
from ninja_jwt.authentication import JWTAuth

from accounts.schemas import MessageOut
from comments.api import task_comments_router
from core.cache import CacheTTL, get_cache, project_tasks_key, query_signature, task_details_key
from core.notifications import (
    emit_task_assignment,
    emit_task_created,
    emit_task_deleted,
    emit_task_updated,
)
from core.utils.auth_utils import require_authenticated_user, require_project_access, require_task_access
from core.utils.pagination import normalize_page, paginate_queryset, resolve_ordering
from projects.models import ProjectMember, Role
from projects.permissions import has_project_access
from tasks.models import Task, TaskStatus
from tasks.schemas import AssignTask, TaskCreate, TaskFilters, TaskOut, TaskPage, TaskUpdate

User = get_user_model()

# Module-level routers and logger
router = Router(tags=["tasks"])
# Mounted under /projects/ for the per-project task collection
project_tasks_router = Router(tags=["tasks"])
logger = logging.getLogger("audit")

router.add_router("/", task_comments_router)

TASK_SORT_FIELDS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "due_date": "due_date",
    "priority": "priority",
    "status": "status",
    "title": "title",
}

# Field changes reported in task_updated events
TRACKED_FIELDS = ("status", "priority", "assignee_id")


def task_queryset():
    return Task.objects.select_related("project", "assignee", "created_by").annotate(
        comment_count=Count("comments", distinct=True)
    )


def serialize_task(task):
    return TaskOut.model_validate(task).model_dump(mode="json")


def accessible_tasks(user):
    """Tasks in non-archived projects the user owns or belongs to."""
    member_of = ProjectMember.objects.filter(user=user).values("project_id")
    return task_queryset().filter(
        Q(project__owner=user) | Q(project_id__in=member_of),
        project__is_archived=False,
    )


def apply_filters(qs, filters: TaskFilters):
    if filters.status:
        qs = qs.filter(status=filters.status)
    if filters.priority:
        qs = qs.filter(priority=filters.priority)
    if filters.assignee_id is not None:
        qs = qs.filter(assignee_id=filters.assignee_id)
    if filters.due_date:
        qs = qs.filter(due_date__date=filters.due_date)
    if filters.search:
        qs = qs.filter(Q(title__icontains=filters.search) | Q(description__icontains=filters.search))
    return qs


def list_page(qs, filters: TaskFilters):
    page, limit = normalize_page(filters.page, filters.limit)
    ordering = resolve_ordering(TASK_SORT_FIELDS, filters.sort_by, filters.sort_order)
    return paginate_queryset(qs.order_by(*ordering), page, limit, serialize_task)


def resolve_assignee(project, assignee_id):
    """Active user with access to project, or None when assignee_id is None."""
    if assignee_id is None:
        return None
    assignee = User.objects.filter(id=assignee_id, is_active=True).first()
    if assignee is None:
        raise HttpError(400, "Assignee not found or inactive")
    if not has_project_access(project, assignee.id):
        raise HttpError(400, "Assignee does not have access to this project")
    return assignee


def task_detail(task_id):
    return get_cache().get_or_load(
        task_details_key(task_id),
        lambda: serialize_task(task_queryset().get(id=task_id)),
        ttl=CacheTTL.SHORT,
    )


@router.get("/", response=TaskPage, auth=JWTAuth())
def list_tasks(request, filters: Query[TaskFilters]):
    user = request.auth
    require_authenticated_user(user)
    return list_page(apply_filters(accessible_tasks(user), filters), filters)


@router.get("/my-tasks", response=TaskPage, auth=JWTAuth())
def my_tasks(request, filters: Query[TaskFilters]):
    """Tasks assigned to the caller; assignee_id in the query is ignored."""
    user = request.auth
    require_authenticated_user(user)
    filters.assignee_id = None
    qs = task_queryset().filter(assignee=user, project__is_archived=False)
    return list_page(apply_filters(qs, filters), filters)


@project_tasks_router.get("/{int:project_id}/tasks", response=TaskPage, auth=JWTAuth())
def list_project_tasks(request, project_id: int, filters: Query[TaskFilters]):
    project, _ = require_project_access(request.auth, project_id)
    signature = query_signature(**filters.dict())
    return get_cache().get_or_load(
        project_tasks_key(project.id, signature),
        lambda: list_page(apply_filters(task_queryset().filter(project=project), filters), filters),
        ttl=CacheTTL.SHORT,
    )


@project_tasks_router.post("/{int:project_id}/tasks", response={201: TaskOut}, auth=JWTAuth())
def create_task(request, project_id: int, data: TaskCreate):
    user = request.auth
    project, _ = require_project_access(user, project_id, required_role=Role.MEMBER)
    assignee = resolve_assignee(project, data.assignee_id)
    fields = data.dict(exclude={"assignee_id"})
    with transaction.atomic():
        task = Task.objects.create(
            project=project,
            created_by=user,
            assignee=assignee,
            completed_at=timezone.now() if data.status == TaskStatus.DONE else None,
            **fields,
        )
    logger.info(
        "audit:task_create user=%s project=%s task=%s",
        user.id, project.id, task.id,
    )
    emit_task_created(task, user)
    if assignee is not None and assignee.id != user.id:
        emit_task_assignment(task, user, assignee)
    return 201, task_detail(task.id)


@router.get("/{int:task_id}", response=TaskOut, auth=JWTAuth())
def get_task(request, task_id: int):
    task, _ = require_task_access(request.auth, task_id)
    return task_detail(task.id)


@router.put("/{int:task_id}", response=TaskOut, auth=JWTAuth())
def update_task(request, task_id: int, data: TaskUpdate):
    user = request.auth
    task, _ = require_task_access(user, task_id, required_role=Role.MEMBER)
    updates = data.dict(exclude_unset=True)
    for field in ("title", "status", "priority"):
        if field in updates and updates[field] is None:
            raise HttpError(400, f"{field} cannot be null")

    if "assignee_id" in updates:
        resolve_assignee(task.project, updates["assignee_id"])
    if "status" in updates:
        if updates["status"] == TaskStatus.DONE:
            if task.status != TaskStatus.DONE or task.completed_at is None:
                task.completed_at = timezone.now()
        else:
            task.completed_at = None

    changes = []
    for field, value in updates.items():
        old_value = getattr(task, field)
        if field in TRACKED_FIELDS and old_value != value:
            changes.append({"field": field, "old_value": old_value, "new_value": value})
        setattr(task, field, value)
    task.save()
    logger.info(
        "audit:task_update user=%s project=%s task=%s fields=%s",
        user.id, task.project_id, task.id, ",".join(sorted(updates)),
    )
    emit_task_updated(task, user, changes)
    return task_detail(task.id)


@router.delete("/{int:task_id}", response=MessageOut, auth=JWTAuth())
def delete_task(request, task_id: int):
    user = request.auth
    task, _ = require_task_access(user, task_id, required_role=Role.MEMBER)
    project_id = task.project_id
    task.delete()
    logger.info(
        "audit:task_delete user=%s project=%s task=%s",
        user.id, project_id, task_id,
    )
    emit_task_deleted(task_id, project_id, user)
    return {"detail": "Task deleted successfully."}


@router.put("/{int:task_id}/assign", response=TaskOut, auth=JWTAuth())
def assign_task(request, task_id: int, data: AssignTask):
    user = request.auth
    task, _ = require_task_access(user, task_id, required_role=Role.MEMBER)
    assignee = resolve_assignee(task.project, data.assignee_id)
    task.assignee = assignee
    task.save(update_fields=["assignee", "updated_at"])
    logger.info(
        "audit:task_assign user=%s project=%s task=%s assignee=%s",
        user.id, task.project_id, task.id, assignee.id,
    )
    emit_task_assignment(task, user, assignee)
    return task_detail(task.id)


@router.put("/{int:task_id}/unassign", response=TaskOut, auth=JWTAuth())
def unassign_task(request, task_id: int):
    user = request.auth
    task, _ = require_task_access(user, task_id, required_role=Role.MEMBER)
    task.assignee = None
    task.save(update_fields=["assignee", "updated_at"])
    logger.info(
        "audit:task_unassign user=%s project=%s task=%s",
        user.id, task.project_id, task.id,
    )
    emit_task_assignment(task, user, None)
    return task_detail(task.id)
