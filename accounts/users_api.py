import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from ninja import Router
from ninja.errors import HttpError
from ninja.throttling import AnonRateThrottle, UserRateThrottle
from ninja_jwt.authentication import JWTAuth
from ninja_jwt.token_blacklist.models import BlacklistedToken, OutstandingToken

from accounts.api import send_verification_email
from accounts.models import EmailVerificationToken, PendingPasswordReset
from accounts.schemas import (
    ChangePasswordSchema,
    ForgotPasswordSchema,
    MessageOut,
    ResetPasswordSchema,
    UserOut,
    UserProfileUpdate,
    VerifyEmailSchema,
)
from core.tasks import render_email_template, send_email_task
from core.utils.auth_utils import require_authenticated_user

User = get_user_model()
logger = logging.getLogger("audit")

users_router = Router()

send_verification_throttle = UserRateThrottle(settings.SEND_VERIFICATION_RATE_LIMIT)
forgot_password_throttle = AnonRateThrottle(settings.FORGOT_PASSWORD_RATE_LIMIT)

FORGOT_PASSWORD_RESPONSE = {"detail": "If the email exists, a password reset link has been sent."}


def blacklist_outstanding_tokens(user) -> int:
    """Blacklist every refresh token issued to user; returns how many were newly blacklisted."""
    count = 0
    for token in OutstandingToken.objects.filter(user=user):
        _, created = BlacklistedToken.objects.get_or_create(token=token)
        count += int(created)
    return count


@users_router.put("/profile", response=UserOut, auth=JWTAuth())
def update_profile(request, data: UserProfileUpdate):
    user = request.auth
    require_authenticated_user(user)
    for field, value in data.dict(exclude_unset=True).items():
        setattr(user, field, value)
    user.save()
    logger.info("audit:profile_update user=%s", user.id)
    return user


@users_router.put("/password", response=MessageOut, auth=JWTAuth())
def change_password(request, data: ChangePasswordSchema):
    user = request.auth
    require_authenticated_user(user)
    if not user.check_password(data.current_password):
        raise HttpError(400, "Current password is incorrect")
    user.set_password(data.new_password)
    user.save()
    logger.info("audit:password_change user=%s", user.id)
    return {"detail": "Password changed successfully."}


@users_router.post("/send-verification", response=MessageOut, auth=JWTAuth(), throttle=[send_verification_throttle])
def send_verification(request):
    user = request.auth
    require_authenticated_user(user)
    if user.email_verified:
        raise HttpError(400, "Email is already verified")
    if not send_verification_email(user):
        raise HttpError(500, "Failed to send verification email")
    return {"detail": "Verification email sent. Please check your inbox."}


@users_router.post("/verify-email", response=MessageOut)
def verify_email(request, data: VerifyEmailSchema):
    try:
        pending = EmailVerificationToken.objects.select_related("user").get(token=data.token)
    except EmailVerificationToken.DoesNotExist:
        raise HttpError(400, "Invalid or expired token.")
    if pending.is_expired():
        pending.delete()
        raise HttpError(400, "Token has expired.")

    user = pending.user
    if pending.email != user.email:
        pending.delete()
        raise HttpError(400, "Invalid or expired token.")
    with transaction.atomic():
        user.email_verified = True
        user.email_verified_at = timezone.now()
        user.save(update_fields=["email_verified", "email_verified_at", "updated_at"])
        EmailVerificationToken.objects.filter(user=user).delete()
    logger.info("audit:email_verified user=%s", user.id)
    return {"detail": "Email verified successfully."}


@users_router.post("/forgot-password", response=MessageOut, throttle=[forgot_password_throttle])
def forgot_password(request, data: ForgotPasswordSchema):
    """
    Initiate password reset: send reset email if an active user has this address (always a generic response).
    """
    user = User.objects.filter(email=data.email, is_active=True).first()
    if not user:
        return FORGOT_PASSWORD_RESPONSE
    PendingPasswordReset.objects.filter(user=user).delete()
    expiry_hours = settings.PASSWORD_RESET_EXPIRY_HOURS
    pending = PendingPasswordReset.objects.create(
        user=user,
        expires_at=timezone.now() + timedelta(hours=expiry_hours),
    )
    subject, body = render_email_template(
        "password_reset",
        user_display_name=user.display_name,
        reset_link=f"{settings.FRONTEND_URL}/reset-password?token={pending.token}",
        expiry_hours=expiry_hours,
    )
    try:
        send_email_task.delay(subject, body, [user.email])
    except Exception:
        # Response stays generic so the address is not disclosed
        logger.exception("audit:email_failed user=%s kind=password_reset", user.id)
    logger.info("audit:password_reset_request user=%s", user.id)
    return FORGOT_PASSWORD_RESPONSE


@users_router.post("/reset-password", response=MessageOut)
def reset_password(request, data: ResetPasswordSchema):
    try:
        pending = PendingPasswordReset.objects.select_related("user").get(token=data.token)
    except PendingPasswordReset.DoesNotExist:
        raise HttpError(400, "Invalid or expired token.")
    if pending.is_expired():
        pending.delete()
        raise HttpError(400, "Token has expired.")

    user = pending.user
    with transaction.atomic():
        user.set_password(data.new_password)
        user.save()
        PendingPasswordReset.objects.filter(user=user).delete()
        revoked = blacklist_outstanding_tokens(user)
    logger.info("audit:password_reset user=%s revoked_tokens=%s", user.id, revoked)
    return {"detail": "Password has been reset successfully."}


@users_router.delete("/account", response=MessageOut, auth=JWTAuth())
def deactivate_account(request):
    """Deactivate rather than delete: owned projects and authored tasks stay intact."""
    user = request.auth
    require_authenticated_user(user)
    with transaction.atomic():
        user.is_active = False
        user.save(update_fields=["is_active", "updated_at"])
        revoked = blacklist_outstanding_tokens(user)
    logger.info("audit:account_deactivate user=%s revoked_tokens=%s", user.id, revoked)
    return {"detail": "Account deactivated successfully."}
