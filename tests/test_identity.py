import httpx
import pytest

from accounts_oauth.common.exceptions import OAuthException
from accounts_oauth.services.identity.identity_client import (
    HttpIdentityProvider,
    IdentityError,
    UserIdentity,
    resolve_user,
    scoped_user_claims,
)
from conftest import ALICE, FakeIdentityProvider

USER_RECORD = {
    "id": "user-alice",
    "email": "alice@mail.example",
    "email_confirmed_at": "2024-05-01T10:00:00Z",
    "user_metadata": {"full_name": "Alice Example", "avatar_url": "https://cdn/a.png"},
}


def _provider(handler) -> HttpIdentityProvider:
    return HttpIdentityProvider(
        base_url="https://id.example/auth/v1/",
        service_key="service-key",
        transport=httpx.MockTransport(handler),
    )


class TestHttpIdentityProvider:
    async def test_fetches_admin_user(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["apikey"] = request.headers.get("apikey")
            return httpx.Response(200, json=USER_RECORD)

        user = await _provider(handler).get_user("user-alice")

        assert seen["url"] == "https://id.example/auth/v1/admin/users/user-alice"
        assert seen["auth"] == "Bearer service-key"
        assert seen["apikey"] == "service-key"
        assert user == UserIdentity(
            id="user-alice",
            email="alice@mail.example",
            email_verified=True,
            name="Alice Example",
            avatar_url="https://cdn/a.png",
        )

    async def test_unconfirmed_email_and_name_fallback(self):
        record = {
            "id": "user-bob",
            "email": "bob@mail.example",
            "email_confirmed_at": None,
            "user_metadata": {"name": "Bob"},
        }
        user = await _provider(lambda request: httpx.Response(200, json=record)).get_user("user-bob")
        assert user.email_verified is False
        assert user.name == "Bob"
        assert user.avatar_url is None

    async def test_missing_user_is_none(self):
        provider = _provider(lambda request: httpx.Response(404, json={"msg": "User not found"}))
        assert await provider.get_user("ghost") is None

    async def test_server_error_raises(self):
        provider = _provider(lambda request: httpx.Response(503))
        with pytest.raises(IdentityError):
            await provider.get_user("user-alice")

    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(IdentityError):
            await _provider(handler).get_user("user-alice")

    async def test_malformed_body_raises(self):
        provider = _provider(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(IdentityError):
            await provider.get_user("user-alice")


class TestResolveUser:
    async def test_returns_identity(self):
        assert await resolve_user(FakeIdentityProvider(ALICE), ALICE.id) == ALICE

    async def test_unknown_user_is_server_error(self):
        with pytest.raises(OAuthException) as excinfo:
            await resolve_user(FakeIdentityProvider(), "ghost")
        assert excinfo.value.error == "server_error"
        assert excinfo.value.status_code == 500

    async def test_identity_failure_is_server_error(self):
        provider = FakeIdentityProvider(ALICE)
        provider.fail = True
        with pytest.raises(OAuthException) as excinfo:
            await resolve_user(provider, ALICE.id)
        assert excinfo.value.error == "server_error"
        assert excinfo.value.description == "Failed to get user info"


class TestScopedUserClaims:
    def test_openid_only(self):
        claims = scoped_user_claims(ALICE, "openid")
        assert claims.model_dump(exclude_none=True) == {"id": ALICE.id, "email_verified": True}

    def test_email_scope(self):
        claims = scoped_user_claims(ALICE, "openid email")
        assert claims.email == ALICE.email
        assert claims.name is None
        assert claims.avatar_url is None

    def test_profile_scope(self):
        claims = scoped_user_claims(ALICE, "profile")
        assert claims.email is None
        assert claims.name == ALICE.name
        assert claims.avatar_url == ALICE.avatar_url

    def test_all_scopes(self):
        claims = scoped_user_claims(ALICE, "openid email profile")
        assert claims.model_dump() == {
            "id": ALICE.id,
            "email_verified": True,
            "email": ALICE.email,
            "name": ALICE.name,
            "avatar_url": ALICE.avatar_url,
        }

    def test_scope_names_match_whole_words(self):
        claims = scoped_user_claims(ALICE, "emails profiles")
        assert claims.email is None
        assert claims.name is None
