import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from ninja import Router
from ninja.errors import HttpError
from ninja.throttling import AnonRateThrottle
from ninja_extra import api_controller, route
from ninja_jwt.authentication import JWTAuth
from ninja_jwt.controller import NinjaJWTDefaultController
from ninja_jwt.exceptions import TokenError
from ninja_jwt.tokens import RefreshToken

from accounts.models import EmailVerificationToken
from accounts.schemas import (
    LoginSchema,
    MessageOut,
    RefreshTokenSchema,
    RegisterSchema,
    TokenPairOut,
    UnverifiedUserSchema,
    UserOut,
)
from core.cache import CacheTTL, get_cache, user_profile_key
from core.tasks import render_email_template, send_email_task
from core.utils.auth_utils import require_authenticated_user

User = get_user_model()
logger = logging.getLogger("audit")

auth_router = Router()

register_throttle = AnonRateThrottle(settings.REGISTER_RATE_LIMIT)


def issue_tokens(user):
    refresh = RefreshToken.for_user(user)
    return {"access": str(refresh.access_token), "refresh": str(refresh), "user": user}


def send_verification_email(user) -> bool:
    """Replace any pending verification token for user and mail a fresh link. False if the mail could not be queued."""
    EmailVerificationToken.objects.filter(user=user).delete()
    expiry_hours = settings.EMAIL_VERIFICATION_EXPIRY_HOURS
    pending = EmailVerificationToken.objects.create(
        user=user,
        email=user.email,
        expires_at=timezone.now() + timedelta(hours=expiry_hours),
    )
    subject, body = render_email_template(
        "email_verification",
        user_display_name=user.display_name,
        verification_link=f"{settings.FRONTEND_URL}/verify-email?token={pending.token}",
        expiry_hours=expiry_hours,
    )
    try:
        send_email_task.delay(subject, body, [user.email])
    except Exception:
        logger.exception("audit:email_failed user=%s kind=verification", user.id)
        return False
    return True


@api_controller('/auth', tags=['Auth'])
class AuthController(NinjaJWTDefaultController):
    """Token endpoints: /auth/login plus the stock /auth/refresh and /auth/verify."""

    @route.post("/login", response={200: TokenPairOut, 403: UnverifiedUserSchema}, url_name="token_obtain_pair")
    def obtain_token(self, request, data: LoginSchema):
        identifier = data.email_or_username.strip().lower()
        user = User.objects.filter(Q(email=identifier) | Q(username=identifier), is_active=True).first()
        if user is None or not user.check_password(data.password):
            logger.info("audit:login_failed identifier=%s", identifier)
            raise HttpError(401, "Invalid credentials")

        if getattr(settings, "REQUIRE_EMAIL_VERIFICATION_FOR_LOGIN", False) and not user.email_verified:
            return 403, UnverifiedUserSchema(
                detail="Please verify your email address before logging in.",
                email_verified=False,
            )

        user.last_login = timezone.now()
        user.save(update_fields=["last_login"])
        logger.info("audit:login user=%s", user.id)
        return 200, issue_tokens(user)


@auth_router.post("/register", response={201: TokenPairOut}, throttle=[register_throttle])
def register(request, data: RegisterSchema):
    if User.objects.filter(email=data.email).exists():
        raise HttpError(400, "Email is already registered")
    if User.objects.filter(username=data.username).exists():
        raise HttpError(400, "Username is already taken")

    with transaction.atomic():
        user = User.objects.create_user(
            email=data.email,
            password=data.password,
            username=data.username,
            first_name=data.first_name,
            last_name=data.last_name,
            email_verified=False,
        )
    send_verification_email(user)
    logger.info("audit:user_register user=%s", user.id)
    return 201, issue_tokens(user)


@auth_router.post("/logout", response=MessageOut, auth=JWTAuth())
def logout(request, data: RefreshTokenSchema):
    """Blacklist the refresh token; the short-lived access token simply expires."""
    user = request.auth
    require_authenticated_user(user)
    try:
        token = RefreshToken(data.refresh)
    except TokenError:
        raise HttpError(400, "Invalid or expired refresh token")
    if str(token.get("user_id")) != str(user.id):
        raise HttpError(400, "Refresh token does not belong to this user")
    token.blacklist()
    logger.info("audit:logout user=%s", user.id)
    return {"detail": "Logged out successfully."}


@auth_router.get("/me", response=UserOut, auth=JWTAuth())
def get_me(request):
    user = request.auth
    require_authenticated_user(user)
    return get_cache().get_or_load(
        user_profile_key(user.id),
        lambda: UserOut.model_validate(user).model_dump(),
        ttl=CacheTTL.LONG,
    )
