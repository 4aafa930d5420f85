from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from projects.models import Project, ProjectMember
from tasks.models import Task
from core.cache import invalidate_project_caches, invalidate_membership_caches


@receiver([post_save, post_delete], sender=Project)
def invalidate_project_cache(sender, instance, **kwargs):
    # Cached task details embed the project's name and color
    task_ids = Task.objects.filter(project_id=instance.id).values_list("id", flat=True)
    invalidate_project_caches(instance.id, task_ids=list(task_ids))


@receiver([post_save, post_delete], sender=ProjectMember)
def invalidate_membership_cache(sender, instance, **kwargs):
    invalidate_membership_caches(instance.project_id)
