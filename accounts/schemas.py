import re
from datetime import datetime
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import URLValidator, validate_email
from ninja import Schema, Field
from pydantic import field_validator, model_validator

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
AVATAR_URL_VALIDATOR = URLValidator(schemes=["http", "https"])
PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
    (re.compile(r"[@$!%*?&]"), "Password must contain at least one special character (@$!%*?&)"),
)


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    for pattern, message in PASSWORD_RULES:
        if not pattern.search(value):
            raise ValueError(message)
    return value


def _name(value, label):
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError(f"{label} must be 2-50 characters long")
    return value


class UserBrief(Schema):
    id: int
    username: str
    first_name: str
    last_name: str
    avatar: Optional[str] = None


class UserOut(Schema):
    id: int
    email: str
    username: str
    first_name: str
    last_name: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool
    email_verified: bool
    email_verified_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class RegisterSchema(Schema):
    email: str
    username: str
    first_name: str
    last_name: str
    password: str
    confirm_password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        v = v.strip().lower()
        try:
            validate_email(v)
        except ValidationError:
            raise ValueError("Please provide a valid email address")
        return v

    @field_validator("username")
    @classmethod
    def check_username(cls, v):
        v = v.strip().lower()
        if not 3 <= len(v) <= 30:
            raise ValueError("Username must be 3-30 characters long")
        if not USERNAME_RE.match(v):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return v

    @field_validator("first_name")
    @classmethod
    def check_first_name(cls, v):
        return _name(v, "First name")

    @field_validator("last_name")
    @classmethod
    def check_last_name(cls, v):
        return _name(v, "Last name")

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginSchema(Schema):
    email_or_username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenPairOut(Schema):
    access: str
    refresh: str
    user: UserOut


class RefreshTokenSchema(Schema):
    refresh: str


class UnverifiedUserSchema(Schema):
    detail: str
    email_verified: bool = False


class MessageOut(Schema):
    detail: str


class UserProfileUpdate(Schema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = None
    model_config = {
        "extra": "forbid"
    }

    @field_validator("first_name")
    @classmethod
    def check_first_name(cls, v):
        return _name(v, "First name") if v is not None else v

    @field_validator("last_name")
    @classmethod
    def check_last_name(cls, v):
        return _name(v, "Last name") if v is not None else v

    @field_validator("bio")
    @classmethod
    def strip_bio(cls, v):
        return v.strip() if v is not None else v

    @field_validator("avatar")
    @classmethod
    def check_avatar(cls, v):
        if v is None:
            return v
        try:
            AVATAR_URL_VALIDATOR(v)
        except ValidationError:
            raise ValueError("Avatar must be a valid URL")
        return v


class ChangePasswordSchema(Schema):
    current_password: str = Field(..., min_length=1)
    new_password: str
    confirm_new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v):
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_new_password:
            raise ValueError("New passwords do not match")
        return self


class VerifyEmailSchema(Schema):
    token: str = Field(..., min_length=1)


class ForgotPasswordSchema(Schema):
    email: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class ResetPasswordSchema(Schema):
    token: str = Field(..., min_length=1)
    new_password: str
    confirm_new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v):
        return check_password_strength(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_new_password:
            raise ValueError("Passwords do not match")
        return self
