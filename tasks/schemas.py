from datetime import date, datetime
from typing import List, Optional

from ninja import Schema, Field
from pydantic import field_validator

from accounts.schemas import UserBrief
from core.utils.pagination import DEFAULT_PAGE_SIZE, PageMeta
from projects.schemas import ProjectBrief
from tasks.models import TaskPriority, TaskStatus


def _strip_title(value):
    value = value.strip()
    if not value:
        raise ValueError("Task title is required")
    return value


class TaskCounts(Schema):
    comments: int


class TaskOut(Schema):
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    project: ProjectBrief
    assignee: Optional[UserBrief] = None
    created_by: UserBrief
    counts: TaskCounts

    @staticmethod
    def resolve_counts(obj):
        # Cached payloads arrive already serialized
        if isinstance(obj, dict):
            return obj["counts"]
        comments = getattr(obj, "comment_count", None)
        return {"comments": obj.comments.count() if comments is None else comments}


class TaskPage(Schema):
    items: List[TaskOut]
    count: int
    pagination: PageMeta


class TaskFilters(Schema):
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: Optional[str] = None
    sort_order: str = "desc"
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[int] = None
    due_date: Optional[date] = None
    search: Optional[str] = Field(None, max_length=200)


class TaskCreate(Schema):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        return _strip_title(v)


class TaskUpdate(Schema):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = None
    model_config = {
        "extra": "forbid"
    }

    @field_validator("title")
    @classmethod
    def strip_title(cls, v):
        return _strip_title(v) if v is not None else v


class AssignTask(Schema):
    assignee_id: int
