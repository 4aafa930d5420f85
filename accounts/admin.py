from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, EmailVerificationToken, PendingPasswordReset


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    model = User
    list_display = ("id", "email", "username", "first_name", "last_name", "email_verified", "is_active", "created_at")
    list_filter = ("is_staff", "is_active", "email_verified")
    search_fields = ("email", "username", "first_name", "last_name")
    ordering = ("id",)
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Profile", {"fields": ("username", "first_name", "last_name", "bio", "avatar")}),
        ("Verification", {"fields": ("email_verified", "email_verified_at")}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")}),
        ("Important dates", {"fields": ("last_login", "created_at", "updated_at")}),
    )
    add_fieldsets = (
        (None, {
            "classes": ("wide",),
            "fields": ("email", "username", "password1", "password2", "is_staff", "is_active")
        }),
    )
    readonly_fields = ("created_at", "updated_at", "last_login", "email_verified_at")


@admin.register(EmailVerificationToken)
class EmailVerificationTokenAdmin(admin.ModelAdmin):
    list_display = ("user", "email", "created_at", "expires_at")
    search_fields = ("user__email", "email")
    list_filter = ("created_at", "expires_at")


@admin.register(PendingPasswordReset)
class PendingPasswordResetAdmin(admin.ModelAdmin):
    list_display = ("user", "created_at", "expires_at")
    search_fields = ("user__email",)
    list_filter = ("created_at", "expires_at")
