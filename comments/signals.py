from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from comments.models import Comment
from core.cache import invalidate_comment_caches
from tasks.models import Task


@receiver([post_save, post_delete], sender=Comment)
def invalidate_task_on_comment(sender, instance, **kwargs):
    project_id = Task.objects.filter(id=instance.task_id).values_list("project_id", flat=True).first()
    invalidate_comment_caches(instance.task_id, project_id)
