from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from tasks.models import Task
from core.cache import invalidate_task_caches


@receiver([post_save, post_delete], sender=Task)
def invalidate_task_cache(sender, instance, **kwargs):
    invalidate_task_caches(instance.id, instance.project_id)
