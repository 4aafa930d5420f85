from django.db import models
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin, BaseUserManager
from django.utils import timezone
import secrets
import string
from core.utils import make_it_unique


class UserManager(BaseUserManager):
    def _clean_username(self, username):
        # Usernames are lowercase letters, digits and underscores
        allowed = set(string.ascii_lowercase + string.digits + '_')
        return ''.join(c for c in username.lower() if c in allowed) or "user"

    def _generate_username(self, email):
        base_username = self._clean_username(email.split('@')[0])
        return make_it_unique(base_username, self.model, "username")

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("The Email field must be set")
        email = self.normalize_email(email).lower()
        if extra_fields.get("username"):
            extra_fields["username"] = extra_fields["username"].strip().lower()
        else:
            extra_fields["username"] = self._generate_username(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("email_verified", True)
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    email = models.EmailField(unique=True)
    username = models.CharField(max_length=30, unique=True)
    first_name = models.CharField(max_length=50, blank=True)
    last_name = models.CharField(max_length=50, blank=True)
    avatar = models.URLField(blank=True, null=True)
    bio = models.CharField(max_length=500, blank=True, null=True)
    is_active = models.BooleanField(default=True, db_index=True)
    is_staff = models.BooleanField(default=False)
    email_verified = models.BooleanField(default=False)
    email_verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}".strip() or self.email

    def __str__(self):
        return self.email


class ExpiringToken(models.Model):
    token = models.CharField(max_length=64, unique=True, default=secrets.token_urlsafe)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()

    class Meta:
        abstract = True

    def is_expired(self):
        return timezone.now() > self.expires_at


class EmailVerificationToken(ExpiringToken):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="email_verification_tokens")
    email = models.EmailField()

    def __str__(self):
        return f"EmailVerificationToken(user={self.user_id}, email={self.email})"


class PendingPasswordReset(ExpiringToken):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="password_resets")

    def __str__(self):
        return f"PendingPasswordReset(user={self.user_id})"
