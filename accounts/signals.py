from django.db.models import Q
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from django.contrib.auth import get_user_model
from core.cache import invalidate_user_brief_caches, invalidate_user_caches
from tasks.models import Task

User = get_user_model()

# Fields shown wherever the user appears inside another payload
BRIEF_FIELDS = {"username", "first_name", "last_name", "avatar"}


@receiver(post_save, sender=User)
def invalidate_user_cache(sender, instance, created=False, update_fields=None, **kwargs):
    if created or (update_fields is not None and not BRIEF_FIELDS & set(update_fields)):
        invalidate_user_caches(instance.id)
        return
    invalidate_user_brief_caches(instance.id, user_task_refs(instance.id))


@receiver(post_delete, sender=User)
def invalidate_deleted_user_cache(sender, instance, **kwargs):
    invalidate_user_brief_caches(instance.id, user_task_refs(instance.id))


def user_task_refs(user_id):
    return list(
        Task.objects.filter(Q(assignee_id=user_id) | Q(created_by_id=user_id)).values_list("id", "project_id")
    )
