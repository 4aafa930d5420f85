import logging

from ninja import Router
from ninja.errors import HttpError
from ninja_jwt.authentication import JWTAuth

from accounts.schemas import MessageOut
from comments.models import Comment
from comments.schemas import CommentIn, CommentOut, CommentPage
from core.notifications import emit_comment_deleted, emit_comment_updated, emit_new_comment
from core.utils.auth_utils import require_authenticated_user, require_task_access
from core.utils.pagination import normalize_page, paginate_queryset, resolve_ordering

# Module-level routers and logger
router = Router(tags=["comments"])
# Mounted under /tasks/ for the per-task comment thread
task_comments_router = Router(tags=["comments"])
logger = logging.getLogger("audit")

COMMENT_SORT_FIELDS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
}


def get_comment_or_404(comment_id):
    try:
        return Comment.objects.select_related("user", "task__project").get(id=comment_id)
    except Comment.DoesNotExist:
        raise HttpError(404, "Comment not found")


def require_comment_access(user, comment_id):
    """Comments are visible to whoever can see their task."""
    require_authenticated_user(user)
    comment = get_comment_or_404(comment_id)
    require_task_access(user, comment.task_id)
    return comment


@task_comments_router.get("/{int:task_id}/comments", response=CommentPage, auth=JWTAuth())
def list_comments(request, task_id: int, page: int = 1, limit: int = 10, sort_by: str | None = None, sort_order: str = "desc"):
    task, _ = require_task_access(request.auth, task_id)
    page, limit = normalize_page(page, limit)
    ordering = resolve_ordering(COMMENT_SORT_FIELDS, sort_by, sort_order)
    qs = Comment.objects.filter(task=task).select_related("user").order_by(*ordering)
    return paginate_queryset(qs, page, limit, lambda c: CommentOut.model_validate(c).model_dump(mode="json"))


@task_comments_router.post("/{int:task_id}/comments", response={201: CommentOut}, auth=JWTAuth())
def create_comment(request, task_id: int, data: CommentIn):
    user = request.auth
    task, _ = require_task_access(user, task_id)
    comment = Comment.objects.create(task=task, user=user, content=data.content)
    logger.info(
        "audit:comment_create user=%s project=%s task=%s comment=%s",
        user.id, task.project_id, task.id, comment.id,
    )
    emit_new_comment(comment, task.project_id)
    return 201, comment


@router.get("/{int:comment_id}", response=CommentOut, auth=JWTAuth())
def get_comment(request, comment_id: int):
    return require_comment_access(request.auth, comment_id)


@router.put("/{int:comment_id}", response=CommentOut, auth=JWTAuth())
def update_comment(request, comment_id: int, data: CommentIn):
    user = request.auth
    comment = require_comment_access(user, comment_id)
    if comment.user_id != user.id:
        raise HttpError(403, "You can only edit your own comments")
    comment.content = data.content
    comment.save(update_fields=["content", "updated_at"])
    logger.info(
        "audit:comment_update user=%s task=%s comment=%s",
        user.id, comment.task_id, comment.id,
    )
    emit_comment_updated(comment, comment.task.project_id)
    return comment


@router.delete("/{int:comment_id}", response=MessageOut, auth=JWTAuth())
def delete_comment(request, comment_id: int):
    user = request.auth
    comment = require_comment_access(user, comment_id)
    project = comment.task.project
    if comment.user_id != user.id and project.owner_id != user.id:
        raise HttpError(403, "You can only delete your own comments")
    task_id = comment.task_id
    comment.delete()
    logger.info(
        "audit:comment_delete user=%s project=%s task=%s comment=%s",
        user.id, project.id, task_id, comment_id,
    )
    emit_comment_deleted(comment_id, task_id, project.id, user)
    return {"detail": "Comment deleted successfully."}
