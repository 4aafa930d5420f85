from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from projects.models import ProjectMember, Role
from core.cache import CacheLayer, CacheTTL, get_cache, project_members_key

ROLE_RANK = {
    Role.VIEWER: 0,
    Role.MEMBER: 1,
    Role.ADMIN: 2,
    Role.OWNER: 3,
}

# Task creators and assignees may act on their task up to this role
TASK_PARTICIPANT_CEILING = Role.MEMBER


def role_rank(role) -> int:
    """Integer rank of a role; -1 for no role."""
    if role is None:
        return -1
    return ROLE_RANK[Role(role)]


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    role: Optional[str]
    reason: str

    @property
    def message(self) -> str:
        return DENIAL_MESSAGES.get(self.reason, self.reason)


DENIAL_MESSAGES = {
    "archived": "Project is archived",
    "no_access": "You do not have access to this project",
    "no_task_access": "You do not have access to this task",
}


def project_member_roles(project_id, cache: Optional[CacheLayer] = None) -> dict[str, str]:
    """Map of str(user_id) -> role for the project's stored memberships (owner excluded)."""
    cache = cache or get_cache()
    return cache.get_or_load(
        project_members_key(project_id),
        lambda: {
            str(user_id): role
            for user_id, role in ProjectMember.objects.filter(project_id=project_id).values_list("user_id", "role")
        },
        ttl=CacheTTL.MEDIUM,
    )


def effective_role(project, user_id, cache: Optional[CacheLayer] = None) -> Optional[str]:
    """OWNER for the project owner, else the membership role, else None."""
    if user_id is None:
        return None
    if project.owner_id == user_id:
        return Role.OWNER
    role = project_member_roles(project.id, cache).get(str(user_id))
    return Role(role) if role else None


def is_task_participant(task, user_id) -> bool:
    return user_id is not None and (task.created_by_id == user_id or task.assignee_id == user_id)


def evaluate(project, user_id, required_role=None, task=None, allow_archived=False,
             cache: Optional[CacheLayer] = None) -> AccessDecision:
    """
    Decide whether user_id may act on project (or on task inside it).

    Archived projects deny every non-owner; the owner gets through only where the
    caller passes allow_archived. With a task, its creator and assignee have access
    without a membership row (reported as VIEWER) and satisfy required roles up to
    TASK_PARTICIPANT_CEILING. Never raises on denial.
    """
    is_owner = user_id is not None and project.owner_id == user_id
    if project.is_archived and not (is_owner and allow_archived):
        return AccessDecision(False, Role.OWNER if is_owner else None, "archived")

    role = effective_role(project, user_id, cache)
    participant = task is not None and is_task_participant(task, user_id)

    via_task = False
    if role is None:
        if not participant:
            reason = "no_task_access" if task is not None else "no_access"
            return AccessDecision(False, None, reason)
        role = Role.VIEWER
        via_task = True

    if required_role is not None and role_rank(role) < role_rank(required_role):
        if not (participant and role_rank(required_role) <= role_rank(TASK_PARTICIPANT_CEILING)):
            return AccessDecision(False, role, f"{Role(required_role).value} role or higher required")

    if is_owner:
        reason = "owner"
    elif via_task:
        reason = "task_participant"
    else:
        reason = "member"
    return AccessDecision(True, role, reason)


def has_project_access(project, user_id, cache: Optional[CacheLayer] = None) -> bool:
    """True if user owns the project or holds any membership in it (archive state ignored)."""
    return effective_role(project, user_id, cache) is not None
