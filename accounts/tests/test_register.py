import pytest
from django.contrib.auth import get_user_model
from django.core import mail
from accounts.models import EmailVerificationToken

User = get_user_model()

VALID = {
    "email": "Ada@Example.com",
    "username": "Ada_L",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "password": "Str0ng!pass",
    "confirm_password": "Str0ng!pass",
}


@pytest.mark.django_db
def test_register_creates_unverified_user_and_returns_tokens(api_client):
    resp = api_client.post("/auth/register", json=VALID)
    assert resp.status_code == 201, resp.content
    data = resp.json()
    assert data["access"].count(".") == 2
    assert data["refresh"].count(".") == 2
    assert data["user"]["email"] == "ada@example.com"
    assert data["user"]["username"] == "ada_l"
    assert data["user"]["email_verified"] is False

    user = User.objects.get(email="ada@example.com")
    assert user.check_password("Str0ng!pass")
    assert EmailVerificationToken.objects.filter(user=user, email=user.email).count() == 1


@pytest.mark.django_db
def test_register_sends_verification_email(api_client):
    api_client.post("/auth/register", json=VALID)
    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.to == ["ada@example.com"]
    assert "Verify your email address" in message.subject
    token = EmailVerificationToken.objects.get().token
    assert f"verify-email?token={token}" in message.body


@pytest.mark.django_db
def test_register_duplicate_email_or_username(api_client, make_user):
    make_user(email="ada@example.com", username="someone")
    resp = api_client.post("/auth/register", json=VALID)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email is already registered"

    resp = api_client.post("/auth/register", json={**VALID, "email": "other@example.com", "username": "someone"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Username is already taken"


@pytest.mark.django_db
@pytest.mark.parametrize("password,message", [
    ("Sh0rt!", "at least 8 characters"),
    ("nouppercase1!", "uppercase"),
    ("NOLOWERCASE1!", "lowercase"),
    ("NoNumbers!!", "number"),
    ("NoSpecial123", "special character"),
])
def test_register_rejects_weak_passwords(api_client, password, message):
    resp = api_client.post("/auth/register", json={**VALID, "password": password, "confirm_password": password})
    assert resp.status_code == 400
    assert message in resp.json()["detail"]
    assert not User.objects.exists()


@pytest.mark.django_db
def test_register_password_confirmation_must_match(api_client):
    resp = api_client.post("/auth/register", json={**VALID, "confirm_password": "Different1!"})
    assert resp.status_code == 400
    assert "Passwords do not match" in resp.json()["detail"]


@pytest.mark.django_db
@pytest.mark.parametrize("field,value", [
    ("username", "ab"),
    ("username", "has space"),
    ("first_name", "A"),
    ("email", "not-an-email"),
])
def test_register_field_validation(api_client, field, value):
    resp = api_client.post("/auth/register", json={**VALID, field: value})
    assert resp.status_code == 400
    assert "detail" in resp.json()


@pytest.mark.django_db
@pytest.mark.parametrize("email", ["a b@@c", "ada@", "@example.com", "ada@example", "ada@exa mple.com"])
def test_register_rejects_malformed_emails(api_client, email):
    resp = api_client.post("/auth/register", json={**VALID, "email": email})
    assert resp.status_code == 400
    assert "valid email address" in resp.json()["detail"]
    assert not User.objects.exists()
