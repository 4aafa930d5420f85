import re
from datetime import datetime
from typing import List, Optional

from ninja import Schema, Field
from pydantic import field_validator

from accounts.schemas import UserBrief
from core.utils.pagination import PageMeta
from projects.models import Role

COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _check_color(value):
    if value is not None and not COLOR_RE.match(value):
        raise ValueError("Color must be a valid hex color (#RRGGBB)")
    return value


def _not_owner(value):
    if value == Role.OWNER:
        raise ValueError("Ownership cannot be granted through membership")
    return value


class MemberOut(Schema):
    id: int
    role: Role
    joined_at: datetime
    user: UserBrief


class ProjectCounts(Schema):
    tasks: int
    members: int


class ProjectOut(Schema):
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_archived: bool
    created_at: datetime
    updated_at: datetime
    owner: UserBrief
    members: List[MemberOut]
    counts: ProjectCounts

    @staticmethod
    def resolve_counts(obj):
        if isinstance(obj, dict):
            return obj["counts"]
        # Annotated querysets carry the counts; fresh instances fall back to a query
        tasks = getattr(obj, "task_count", None)
        members = getattr(obj, "member_count", None)
        return {
            "tasks": obj.tasks.count() if tasks is None else tasks,
            "members": obj.members.count() if members is None else members,
        }


class ProjectDetailOut(ProjectOut):
    role: Role


class ProjectBrief(Schema):
    id: int
    name: str
    color: Optional[str] = None


class ProjectPage(Schema):
    items: List[ProjectOut]
    count: int
    pagination: PageMeta


class ProjectCreate(Schema):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Project name is required")
        return v

    @field_validator("color")
    @classmethod
    def check_color(cls, v):
        return _check_color(v)


class ProjectUpdate(Schema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    color: Optional[str] = None
    is_archived: Optional[bool] = None
    model_config = {
        "extra": "forbid"
    }

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Project name cannot be blank")
        return v

    @field_validator("color")
    @classmethod
    def check_color(cls, v):
        return _check_color(v)


class MemberAdd(Schema):
    user_id: int
    role: Role = Role.MEMBER

    @field_validator("role")
    @classmethod
    def not_owner(cls, v):
        return _not_owner(v)


class MemberRoleUpdate(Schema):
    role: Role

    @field_validator("role")
    @classmethod
    def not_owner(cls, v):
        return _not_owner(v)
