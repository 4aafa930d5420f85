from django.db import models
from django.conf import settings


class Comment(models.Model):
    content = models.TextField()
    task = models.ForeignKey("tasks.Task", on_delete=models.CASCADE, related_name="comments")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="comments")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Comment({self.id}) on task {self.task_id} by {self.user_id}"
