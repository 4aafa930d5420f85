import logging
import os
from celery import shared_task
from django.core.mail import send_mail
from django.conf import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "email_templates")


def render_email_template(name, **context):
    """
    Render core/email_templates/<name>.txt and return (subject, body).
    The first line of a template is "Subject: ..."; {{ key }} placeholders are replaced from context.
    """
    with open(os.path.join(TEMPLATE_DIR, f"{name}.txt")) as f:
        template = f.read()
    context.setdefault("project_name", settings.PROJECT_NAME)
    for key, value in context.items():
        template = template.replace("{{ " + key + " }}", str(value))
    subject, body = template.split("\n", 1)
    return subject.replace("Subject: ", "").strip(), body.strip()


@shared_task(bind=True, autoretry_for=(Exception,), retry_backoff=True, max_retries=3)
def send_email_task(self, subject, message, recipient_list, from_email=None, html_message=None):
    """
    Celery task to send an email asynchronously using Django's email backend.
    Usage:
        send_email_task.delay(subject, message, recipient_list, from_email, html_message)
    """
    if from_email is None:
        from_email = getattr(settings, 'DEFAULT_FROM_EMAIL', 'webmaster@localhost')
    send_mail(
        subject,
        message,
        from_email,
        recipient_list,
        fail_silently=False,
        html_message=html_message,
    )
    logger.info("email sent subject=%s recipients=%s", subject, len(recipient_list))
