from celery import shared_task
from django.utils import timezone
from accounts.models import EmailVerificationToken, PendingPasswordReset
import logging

logger = logging.getLogger(__name__)

@shared_task
def cleanup_expired_tokens():
    now = timezone.now()
    pw_count, _ = PendingPasswordReset.objects.filter(expires_at__lt=now).delete()
    verification_count, _ = EmailVerificationToken.objects.filter(expires_at__lt=now).delete()
    logger.info(
        "Deleted %s expired password reset tokens and %s expired email verification tokens.",
        pw_count, verification_count,
    )
    return {"password_resets": pw_count, "email_verifications": verification_count}
