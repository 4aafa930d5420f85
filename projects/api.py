import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Prefetch, Q
from ninja import Router
from ninja.errors import HttpError
from ninja_jwt.authentication import JWTAuth

from accounts.schemas import MessageOut
from core.cache import CacheTTL, get_cache, query_signature, user_projects_key
from core.notifications import emit_member_added, emit_member_removed, emit_member_role_updated
from core.utils.auth_utils import require_authenticated_user, require_project_access
from core.utils.pagination import normalize_page, paginate_queryset, resolve_ordering
from projects.models import Project, ProjectMember, Role
from projects.schemas import (
    MemberAdd,
    MemberOut,
    MemberRoleUpdate,
    ProjectCreate,
    ProjectDetailOut,
    ProjectOut,
    ProjectPage,
    ProjectUpdate,
)
from tasks.api import project_tasks_router

User = get_user_model()

# Module-level router and logger
router = Router(tags=["projects"])
logger = logging.getLogger("audit")

router.add_router("/", project_tasks_router)

PROJECT_SORT_FIELDS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "name": "name",
}


def project_queryset(member_order=("joined_at",)):
    return (
        Project.objects.select_related("owner")
        .prefetch_related(
            Prefetch("members", queryset=ProjectMember.objects.select_related("user").order_by(*member_order))
        )
        .annotate(
            task_count=Count("tasks", distinct=True),
            member_count=Count("members", distinct=True),
        )
    )


def project_detail(project_id, role):
    # Role names sort ADMIN < MEMBER < VIEWER, which is also rank order
    project = project_queryset(member_order=("role", "joined_at")).get(id=project_id)
    project.role = role
    return project


@router.get("/", response=ProjectPage, auth=JWTAuth())
def list_projects(request, page: int = 1, limit: int = 10, sort_by: str | None = None, sort_order: str = "desc"):
    """Active projects the caller owns or belongs to; cached per user and query."""
    user = request.auth
    require_authenticated_user(user)
    page, limit = normalize_page(page, limit)
    ordering = resolve_ordering(PROJECT_SORT_FIELDS, sort_by, sort_order)

    def load():
        member_of = ProjectMember.objects.filter(user=user).values("project_id")
        qs = (
            project_queryset()
            .filter(Q(owner=user) | Q(id__in=member_of), is_archived=False)
            .order_by(*ordering)
        )
        return paginate_queryset(qs, page, limit, lambda p: ProjectOut.model_validate(p).model_dump(mode="json"))

    key = user_projects_key(user.id, query_signature(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order))
    return get_cache().get_or_load(key, load, ttl=CacheTTL.MEDIUM)


@router.post("/", response={201: ProjectDetailOut}, auth=JWTAuth())
def create_project(request, data: ProjectCreate):
    user = request.auth
    require_authenticated_user(user)
    project = Project.objects.create(owner=user, **data.dict())
    logger.info(
        "audit:project_create user=%s project=%s name=%s",
        user.id, project.id, project.name,
    )
    return 201, project_detail(project.id, Role.OWNER)


@router.get("/{int:project_id}", response=ProjectDetailOut, auth=JWTAuth())
def get_project(request, project_id: int):
    project, decision = require_project_access(request.auth, project_id, allow_archived=True)
    return project_detail(project.id, decision.role)


@router.put("/{int:project_id}", response=ProjectDetailOut, auth=JWTAuth())
def update_project(request, project_id: int, data: ProjectUpdate):
    user = request.auth
    project, decision = require_project_access(user, project_id, required_role=Role.ADMIN, allow_archived=True)
    changes = data.dict(exclude_unset=True)
    if "name" in changes and changes["name"] is None:
        raise HttpError(400, "Project name cannot be blank")
    if "is_archived" in changes and changes["is_archived"] is None:
        raise HttpError(400, "is_archived must be true or false")
    for field, value in changes.items():
        setattr(project, field, value)
    project.save()
    logger.info(
        "audit:project_update user=%s project=%s fields=%s",
        user.id, project.id, ",".join(sorted(changes)),
    )
    return project_detail(project.id, decision.role)


@router.delete("/{int:project_id}", response=MessageOut, auth=JWTAuth())
def delete_project(request, project_id: int):
    user = request.auth
    project, _ = require_project_access(user, project_id, required_role=Role.OWNER, allow_archived=True)
    with transaction.atomic():
        project.delete()
    logger.info("audit:project_delete user=%s project=%s", user.id, project_id)
    return {"detail": "Project deleted successfully."}


@router.post("/{int:project_id}/members", response={201: MemberOut}, auth=JWTAuth())
def add_member(request, project_id: int, data: MemberAdd):
    user = request.auth
    project, _ = require_project_access(user, project_id, required_role=Role.ADMIN)
    new_user = User.objects.filter(id=data.user_id, is_active=True).first()
    if new_user is None:
        raise HttpError(404, "User not found or inactive")
    if project.owner_id == new_user.id:
        raise HttpError(400, "User is already the owner of this project")
    if ProjectMember.objects.filter(project=project, user=new_user).exists():
        raise HttpError(400, "User is already a member of this project")

    member = ProjectMember.objects.create(project=project, user=new_user, role=data.role)
    logger.info(
        "audit:member_add user=%s project=%s member=%s role=%s",
        user.id, project.id, new_user.id, member.role,
    )
    emit_member_added(member, user)
    return 201, member


def get_member_or_404(project, user_id):
    try:
        return ProjectMember.objects.select_related("user").get(project=project, user_id=user_id)
    except ProjectMember.DoesNotExist:
        raise HttpError(404, "Project member not found")


@router.put("/{int:project_id}/members/{int:user_id}", response=MemberOut, auth=JWTAuth())
def update_member_role(request, project_id: int, user_id: int, data: MemberRoleUpdate):
    user = request.auth
    project, _ = require_project_access(user, project_id, required_role=Role.ADMIN)
    member = get_member_or_404(project, user_id)
    old_role = member.role
    member.role = data.role
    member.save(update_fields=["role"])
    logger.info(
        "audit:member_role_update user=%s project=%s member=%s from=%s to=%s",
        user.id, project.id, user_id, old_role, member.role,
    )
    emit_member_role_updated(member, user)
    return member


@router.delete("/{int:project_id}/members/{int:user_id}", response=MessageOut, auth=JWTAuth())
def remove_member(request, project_id: int, user_id: int):
    user = request.auth
    project, _ = require_project_access(user, project_id, required_role=Role.ADMIN)
    member = get_member_or_404(project, user_id)
    member.delete()
    logger.info(
        "audit:member_remove user=%s project=%s member=%s",
        user.id, project.id, user_id,
    )
    emit_member_removed(project.id, user_id, user)
    return {"detail": "Member removed successfully."}
