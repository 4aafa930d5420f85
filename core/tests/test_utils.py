import pytest
from django.contrib.auth import get_user_model
from ninja.errors import HttpError
from core.utils import make_it_unique
from core.utils.auth_utils import get_project_or_404, get_task_or_404, require_authenticated_user

User = get_user_model()


class DummyUser:
    def __init__(self, is_authenticated):
        self.is_authenticated = is_authenticated


@pytest.mark.django_db
def test_make_it_unique_returns_base_if_unique():
    assert make_it_unique("foo", User, "username") == "foo"
    User.objects.create_user(email="a@example.com", username="foo")
    assert make_it_unique("foo", User, "username") == "foo_1"
    User.objects.create_user(email="b@example.com", username="foo_1")
    assert make_it_unique("foo", User, "username") == "foo_2"


@pytest.mark.django_db
def test_make_it_unique_truncates_to_max_length():
    base = "x" * 30
    User.objects.create_user(email="long@example.com", username=base)
    unique = make_it_unique(base + "yyy", User, "username")
    assert unique == "x" * 28 + "_1"
    assert len(unique) <= 30


@pytest.mark.django_db
def test_make_it_unique_excludes_own_row():
    user = User.objects.create_user(email="self@example.com", username="me")
    assert make_it_unique("me", User, "username", exclude_pk=user.pk) == "me"


def test_require_authenticated_user_raises_401():
    with pytest.raises(HttpError) as exc:
        require_authenticated_user(None)
    assert exc.value.status_code == 401
    with pytest.raises(HttpError):
        require_authenticated_user(DummyUser(False))
    require_authenticated_user(DummyUser(True))


@pytest.mark.django_db
def test_lookup_helpers_raise_404():
    with pytest.raises(HttpError) as exc:
        get_project_or_404(999)
    assert exc.value.status_code == 404
    assert str(exc.value) == "Project not found"
    with pytest.raises(HttpError) as exc:
        get_task_or_404(999)
    assert str(exc.value) == "Task not found"
