from datetime import datetime
from typing import List

from ninja import Schema
from pydantic import field_validator

from accounts.schemas import UserBrief
from core.utils.pagination import PageMeta

MAX_COMMENT_LENGTH = 2000


class CommentOut(Schema):
    id: int
    content: str
    task_id: int
    user: UserBrief
    created_at: datetime
    updated_at: datetime


class CommentPage(Schema):
    items: List[CommentOut]
    count: int
    pagination: PageMeta


class CommentIn(Schema):
    content: str

    @field_validator("content")
    @classmethod
    def check_content(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Comment content is required")
        if len(v) > MAX_COMMENT_LENGTH:
            raise ValueError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")
        return v
