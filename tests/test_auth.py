from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from helpers import auth_headers, count
from main import app
from services.auth_service.models import User
from services.auth_service.oauth import GoogleOAuthClient, get_google_client
from services.auth_service.schemas import GoogleProfile
from shared.errors import GatewayError, ValidationError


class FakeGoogle:
    def __init__(self, profile):
        self.profile = profile
        self.codes = []

    def authorization_url(self):
        return "https://accounts.google.com/o/oauth2/v2/auth?client_id=test"

    async def fetch_profile(self, code):
        self.codes.append(code)
        return self.profile


@pytest.fixture
def google():
    fake = FakeGoogle(GoogleProfile(id="g-123", email="grace@example.com", name="Grace Hopper"))
    app.dependency_overrides[get_google_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_google_client, None)


class TestPasswordAuth:

    async def test_register_login_and_me(self, client):
        registered = await client.post(
            "/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "analytical-engine"}
        )
        assert registered.status_code == 201
        assert registered.json()["email"] == "ada@example.com"
        assert "hashed_password" not in registered.json()

        login = await client.post("/auth/login", json={"email": "ada@example.com", "password": "analytical-engine"})
        assert login.status_code == 200
        assert login.json()["token_type"] == "bearer"

        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {login.json()['access_token']}"})
        assert me.status_code == 200
        assert me.json()["id"] == registered.json()["id"]

    async def test_duplicate_email_conflicts(self, client, make_user):
        await make_user("Ada", email="ada@example.com")

        resp = await client.post(
            "/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "analytical-engine"}
        )

        assert resp.status_code == 409
        assert await count(User) == 1

    async def test_wrong_password_is_unauthorized(self, client):
        await client.post(
            "/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "analytical-engine"}
        )

        resp = await client.post("/auth/login", json={"email": "ada@example.com", "password": "difference-engine"})

        assert resp.status_code == 401

    async def test_short_password_is_rejected(self, client):
        resp = await client.post("/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "short"})
        assert resp.status_code == 422

    async def test_me_requires_a_valid_token(self, client, make_user):
        user = await make_user()

        assert (await client.get("/auth/me")).status_code == 401
        assert (await client.get("/auth/me", headers={"Authorization": "Bearer garbage"})).status_code == 401
        assert (await client.get("/auth/me", headers=auth_headers(user))).status_code == 200


class TestGoogleSignIn:

    async def test_redirect_returns_consent_url(self, client, google):
        resp = await client.get("/auth/google/redirect")

        assert resp.status_code == 200
        assert resp.json()["redirect_url"].startswith("https://accounts.google.com/")

    async def test_callback_creates_then_reuses_account(self, client, google):
        first = await client.get("/auth/google/callback", params={"code": "one-time-code"})
        second = await client.get("/auth/google/callback", params={"code": "another-code"})

        assert first.status_code == 200
        assert first.json()["user"]["email"] == "grace@example.com"
        assert second.json()["user"]["id"] == first.json()["user"]["id"]
        assert google.codes == ["one-time-code", "another-code"]
        assert await count(User) == 1

    async def test_callback_links_existing_password_account(self, client, google, make_user):
        existing = await make_user("Grace", email="grace@example.com")

        resp = await client.get("/auth/google/callback", params={"code": "one-time-code"})

        assert resp.json()["user"]["id"] == existing.id
        assert resp.json()["user"]["name"] == "Grace Hopper"


class TestGoogleOAuthClient:

    def _client(self, handler):
        return GoogleOAuthClient(
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="https://shop.test/auth/google/callback",
            transport=httpx.MockTransport(handler),
        )

    def test_authorization_url(self):
        url = urlparse(self._client(lambda request: httpx.Response(200)).authorization_url())
        params = parse_qs(url.query)

        assert url.netloc == "accounts.google.com"
        assert params["client_id"] == ["client-id"]
        assert params["redirect_uri"] == ["https://shop.test/auth/google/callback"]
        assert params["response_type"] == ["code"]

    async def test_exchanges_code_for_profile(self):
        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                assert parse_qs(request.content.decode())["code"] == ["abc"]
                return httpx.Response(200, json={"access_token": "google-token"})
            assert request.headers["Authorization"] == "Bearer google-token"
            return httpx.Response(200, json={"id": "g-1", "email": "grace@example.com", "name": "Grace"})

        profile = await self._client(handler).fetch_profile("abc")

        assert profile == GoogleProfile(id="g-1", email="grace@example.com", name="Grace")

    async def test_rejected_code(self):
        client = self._client(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(ValidationError) as exc:
            await client.fetch_profile("stale")
        assert exc.value.rule == "invalid"

    async def test_missing_code(self):
        with pytest.raises(ValidationError):
            await self._client(lambda request: httpx.Response(200)).fetch_profile("")

    async def test_network_failure_is_a_gateway_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GatewayError):
            await self._client(handler).fetch_profile("abc")
