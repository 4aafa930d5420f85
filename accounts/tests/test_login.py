import pytest
from django.test import override_settings
from ninja_jwt.tokens import AccessToken


@pytest.mark.django_db
@pytest.mark.parametrize("identifier", ["login@example.com", "LOGIN@example.com", "loginuser"])
def test_login_with_email_or_username(api_client, make_user, identifier):
    make_user(email="login@example.com", username="loginuser")
    resp = api_client.post("/auth/login", json={"email_or_username": identifier, "password": "pw"})
    assert resp.status_code == 200, resp.content
    data = resp.json()
    assert data["user"]["email"] == "login@example.com"
    assert data["access"].count(".") == 2


@pytest.mark.django_db
def test_access_token_carries_issuer_and_audience(api_client, make_user):
    user = make_user()
    resp = api_client.post("/auth/login", json={"email_or_username": user.email, "password": "pw"})
    token = AccessToken(resp.json()["access"])
    assert token["user_id"] in (user.id, str(user.id))
    assert token["iss"] == "taskflow-api"
    assert token["aud"] == "taskflow-client"


@pytest.mark.django_db
def test_login_invalid_credentials(api_client, make_user):
    user = make_user()
    resp = api_client.post("/auth/login", json={"email_or_username": user.email, "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Invalid credentials"}
    resp = api_client.post("/auth/login", json={"email_or_username": "nobody@example.com", "password": "pw"})
    assert resp.status_code == 401


@pytest.mark.django_db
def test_login_rejects_deactivated_user(api_client, make_user):
    user = make_user(is_active=False)
    resp = api_client.post("/auth/login", json={"email_or_username": user.email, "password": "pw"})
    assert resp.status_code == 401


@pytest.mark.django_db
def test_login_missing_fields(api_client):
    resp = api_client.post("/auth/login", json={"email_or_username": "someone@example.com"})
    assert resp.status_code == 400
    assert "detail" in resp.json()


@pytest.mark.django_db
def test_login_requires_verified_email_when_enabled(api_client, make_user):
    user = make_user(email_verified=False)
    with override_settings(REQUIRE_EMAIL_VERIFICATION_FOR_LOGIN=True):
        resp = api_client.post("/auth/login", json={"email_or_username": user.email, "password": "pw"})
    assert resp.status_code == 403
    assert resp.json()["email_verified"] is False


@pytest.mark.django_db
def test_refresh_and_verify(api_client, make_user):
    user = make_user()
    tokens = api_client.post("/auth/login", json={"email_or_username": user.email, "password": "pw"}).json()
    resp = api_client.post("/auth/refresh", json={"refresh": tokens["refresh"]})
    assert resp.status_code == 200
    assert resp.json()["access"].count(".") == 2

    resp = api_client.post("/auth/verify", json={"token": tokens["access"]})
    assert resp.status_code == 200
    resp = api_client.post("/auth/verify", json={"token": "invalid.token.value"})
    assert resp.status_code in (400, 401)
    assert "detail" in resp.json()


@pytest.mark.django_db
def test_logout_blacklists_refresh_token(api_client, make_user, make_auth_headers):
    user = make_user()
    tokens = api_client.post("/auth/login", json={"email_or_username": user.email, "password": "pw"}).json()
    headers = {"Authorization": f"Bearer {tokens['access']}"}

    resp = api_client.post("/auth/logout", json={"refresh": tokens["refresh"]}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["detail"] == "Logged out successfully."

    resp = api_client.post("/auth/refresh", json={"refresh": tokens["refresh"]})
    assert resp.status_code in (400, 401)
    resp = api_client.post("/auth/logout", json={"refresh": tokens["refresh"]}, headers=headers)
    assert resp.status_code == 400


@pytest.mark.django_db
def test_logout_requires_authentication(api_client):
    resp = api_client.post("/auth/logout", json={"refresh": "x"})
    assert resp.status_code == 401


@pytest.mark.django_db
def test_me_returns_profile_and_is_cached(api_client, make_user, make_auth_headers):
    from core.cache import MISS, get_cache, user_profile_key

    user = make_user(first_name="Grace", last_name="Hopper")
    headers = make_auth_headers(api_client, user)
    resp = api_client.get("/auth/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["first_name"] == "Grace"
    assert get_cache().get(user_profile_key(user.id)) is not MISS

    resp = api_client.put("/users/profile", json={"first_name": "Amazing"}, headers=headers)
    assert resp.status_code == 200
    assert get_cache().get(user_profile_key(user.id)) is MISS
    assert api_client.get("/auth/me", headers=headers).json()["first_name"] == "Amazing"
