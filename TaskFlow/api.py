import logging

import orjson
from django.http import JsonResponse
from ninja.errors import ValidationError as NinjaValidationError
from ninja.renderers import BaseRenderer
from ninja_extra import NinjaExtraAPI

from accounts.api import AuthController, auth_router
from accounts.users_api import users_router
from comments.api import router as comments_router
from projects.api import router as projects_router
from tasks.api import router as tasks_router

logger = logging.getLogger(__name__)


# Custom ORJSON Renderer
class ORJSONRenderer(BaseRenderer):
    media_type = "application/json"

    def render(self, request, data, *, response_status):
        return orjson.dumps(data)


def validation_error_message(exc):
    """First readable message out of a ninja ValidationError."""
    for error in getattr(exc, "errors", None) or []:
        msg = error.get("msg")
        if msg:
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "data", "filters")]
            msg = msg.removeprefix("Value error, ")
            return f"{'.'.join(loc)}: {msg}" if loc else msg
    return str(exc)


def custom_validation_error(request, exc):
    # Return 400 instead of 422 for validation errors
    return JsonResponse({"detail": validation_error_message(exc)}, status=400)


api = NinjaExtraAPI(
    renderer=ORJSONRenderer(),
    urls_namespace="api",
    version="v1",
    title="TaskFlow API",
    description="Task management API: projects with role-based membership, tasks and comments",
)

# /auth/login, /auth/refresh, /auth/verify
api.register_controllers(AuthController)


@api.get("/health/")
def health_check(request):
    return {"status": "ok"}


api.add_router("/auth/", auth_router, tags=["auth"])
api.add_router("/users/", users_router, tags=["users"])
api.add_router("/projects/", projects_router)
api.add_router("/tasks/", tasks_router)
api.add_router("/comments/", comments_router)
# Register error handlers (especially for validation errors)
api.add_exception_handler(NinjaValidationError, custom_validation_error)
