import logging
from ninja.errors import HttpError
from projects.models import Project
from projects.permissions import evaluate
from tasks.models import Task

logger = logging.getLogger("audit")


def require_authenticated_user(user):
    if user is None or not getattr(user, "is_authenticated", False):
        raise HttpError(401, "Authentication required")


def get_project_or_404(project_id):
    try:
        return Project.objects.select_related("owner").get(id=project_id)
    except Project.DoesNotExist:
        raise HttpError(404, "Project not found")


def get_task_or_404(task_id):
    try:
        return Task.objects.select_related("project").get(id=task_id)
    except Task.DoesNotExist:
        raise HttpError(404, "Task not found")


def _deny(user, decision, **context):
    logger.info(
        "audit:access_denied user=%s reason=%s %s",
        getattr(user, "id", None), decision.reason,
        " ".join(f"{k}={v}" for k, v in context.items()),
    )
    raise HttpError(403, decision.message)


def require_project_access(user, project_id, required_role=None, allow_archived=False):
    """Load the project and check the caller's role; returns (project, decision)."""
    require_authenticated_user(user)
    project = get_project_or_404(project_id)
    decision = evaluate(project, user.id, required_role=required_role, allow_archived=allow_archived)
    if not decision.granted:
        _deny(user, decision, project=project.id)
    return project, decision


def require_task_access(user, task_id, required_role=None):
    """Load the task and check the caller against its project; returns (task, decision)."""
    require_authenticated_user(user)
    task = get_task_or_404(task_id)
    decision = evaluate(task.project, user.id, required_role=required_role, task=task)
    if not decision.granted:
        _deny(user, decision, project=task.project_id, task=task.id)
    return task, decision
