import pytest
import os
import inspect
from ninja.testing import TestClient
from django.conf import settings
from django.core.cache import cache
from TaskFlow.api import api as project_api
from ninja import NinjaAPI
from core import notifications


def pytest_configure():
    # Allow login without verified email for most tests; specific tests can override this
    settings.REQUIRE_EMAIL_VERIFICATION_FOR_LOGIN = False
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.NOTIFIER_BACKEND = "core.notifications.LocMemNotifier"
    # Ensure Ninja registry checks are skipped in tests
    os.environ.setdefault("NINJA_SKIP_REGISTRY", "true")


@pytest.fixture(autouse=True)
def patch_ninja_rate_throttles(monkeypatch):
    """
    Patch UserRateThrottle/AnonRateThrottle.allow_request to always allow during tests,
    regardless of signature (handles both with/without 'view').
    """
    from ninja.throttling import AnonRateThrottle, UserRateThrottle
    for throttle_cls in (UserRateThrottle, AnonRateThrottle):
        sig = inspect.signature(throttle_cls.allow_request)
        if len(sig.parameters) == 3:
            monkeypatch.setattr(throttle_cls, "allow_request", lambda self, request, view: True)
        else:
            monkeypatch.setattr(throttle_cls, "allow_request", lambda self, request: True)


@pytest.fixture(autouse=True)
def clean_cache_and_outbox(settings):
    settings.NOTIFIER_BACKEND = "core.notifications.LocMemNotifier"
    cache.clear()
    notifications.outbox.clear()
    yield
    notifications.outbox.clear()


@pytest.fixture(scope="function")
def api_client():
    # Use the main project API to prevent re-attaching shared routers
    try:
        NinjaAPI._registry.clear()
    except Exception:
        pass
    return TestClient(project_api)


@pytest.fixture
def make_user(db):
    """Return a callable creating active, verified users; password defaults to "pw"."""
    from django.contrib.auth import get_user_model
    User = get_user_model()
    counter = {"n": 0}

    def _make(email: str | None = None, password: str = "pw", **extra):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        extra.setdefault("email_verified", True)
        return User.objects.create_user(email=email, password=password, **extra)
    return _make


@pytest.fixture
def make_auth_headers():
    """Return a callable that generates Bearer auth headers for a user via /auth/login."""
    def _make(client: TestClient, user, password: str = "pw") -> dict[str, str]:
        resp = client.post("/auth/login", json={"email_or_username": user.email, "password": password})
        assert resp.status_code == 200, f"Failed to get token for {user.email}: {resp.status_code} {resp.content}"
        access = resp.json()["access"]
        return {"Authorization": f"Bearer {access}"}
    return _make
