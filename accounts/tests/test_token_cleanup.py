import pytest
from datetime import timedelta
from django.utils import timezone
from accounts.models import EmailVerificationToken, PendingPasswordReset, User
from accounts.tasks import cleanup_expired_tokens


@pytest.mark.django_db
def test_cleanup_expired_tokens():
    user = User.objects.create_user(email="test@example.com", password="pw")
    now = timezone.now()
    pw_expired = PendingPasswordReset.objects.create(user=user, expires_at=now - timedelta(hours=1))
    email_expired = EmailVerificationToken.objects.create(
        user=user, email=user.email, expires_at=now - timedelta(hours=1)
    )
    pw_valid = PendingPasswordReset.objects.create(user=user, expires_at=now + timedelta(hours=1))
    email_valid = EmailVerificationToken.objects.create(
        user=user, email=user.email, expires_at=now + timedelta(hours=1)
    )

    result = cleanup_expired_tokens()

    assert result == {"password_resets": 1, "email_verifications": 1}
    assert not PendingPasswordReset.objects.filter(pk=pw_expired.pk).exists()
    assert not EmailVerificationToken.objects.filter(pk=email_expired.pk).exists()
    assert PendingPasswordReset.objects.filter(pk=pw_valid.pk).exists()
    assert EmailVerificationToken.objects.filter(pk=email_valid.pk).exists()


@pytest.mark.django_db
def test_cleanup_with_nothing_expired():
    assert cleanup_expired_tokens() == {"password_resets": 0, "email_verifications": 0}
