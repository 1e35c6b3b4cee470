import pytest

from accounts_oauth.common.exceptions import InvalidScopeError, OAuthException
from accounts_oauth.repositories import auth_repo
from accounts_oauth.services.auth import clients, consent
from conftest import ALICE, MAIL_CLIENT_ID, MAIL_REDIRECT_URI


class TestClientRegistry:
    async def test_resolve_known(self, db, mail_client):
        client = await clients.resolve(db, MAIL_CLIENT_ID)
        assert client is not None
        assert client.client_name == "Mail Example"

    async def test_resolve_unknown(self, db, mail_client):
        assert await clients.resolve(db, "nobody") is None
        assert await clients.resolve(db, "") is None

    async def test_require_active_rejects_inactive(self, db, inactive_client):
        with pytest.raises(OAuthException) as excinfo:
            await clients.require_active(db, "retired.example", status_code=401)
        assert excinfo.value.error == "invalid_client"
        assert excinfo.value.status_code == 401

    async def test_validate_ok(self, db, mail_client):
        clients.validate(mail_client, MAIL_REDIRECT_URI, ["openid", "email"])

    async def test_validate_inactive(self, db, inactive_client):
        with pytest.raises(OAuthException) as excinfo:
            clients.validate(inactive_client, "https://retired.example/cb", ["openid"])
        assert excinfo.value.error == "invalid_client"

    @pytest.mark.parametrize(
        "redirect_uri",
        [
            "https://mail.example/cb/",
            "https://mail.example/cb?x=1",
            "https://mail.example/callback",
            "http://mail.example/cb",
            "https://mail.example/c",
            "https://mail.example/cb.evil.example",
        ],
    )
    async def test_redirect_must_match_exactly(self, db, mail_client, redirect_uri):
        with pytest.raises(OAuthException) as excinfo:
            clients.validate(mail_client, redirect_uri, ["openid"])
        assert excinfo.value.error == "invalid_request"

    @pytest.mark.parametrize("scope", [None, "", "   ", " \t "])
    def test_blank_scope_requests_default_set(self, scope):
        assert clients.requested_scopes(scope) == ["openid", "profile", "email"]

    def test_requested_scopes_deduplicated(self):
        assert clients.requested_scopes("email  openid email") == ["email", "openid"]

    async def test_scope_outside_allowed_set_is_named(self, db, mail_client):
        with pytest.raises(InvalidScopeError) as excinfo:
            clients.validate(mail_client, MAIL_REDIRECT_URI, ["openid", "admin", "mail.send"])
        assert excinfo.value.error == "invalid_scope"
        assert excinfo.value.scopes == ["admin", "mail.send"]
        assert excinfo.value.description == "Invalid scopes: admin, mail.send"


class TestConsentStore:
    async def test_no_consent(self, db, mail_client):
        assert await consent.find_active(db, ALICE.id, MAIL_CLIENT_ID) is None
        assert not consent.covers(None, ["openid"])

    async def test_upsert_inserts_then_covers(self, db, mail_client):
        await consent.upsert(db, ALICE.id, MAIL_CLIENT_ID, ["openid", "email"])
        await db.commit()

        active = await consent.find_active(db, ALICE.id, MAIL_CLIENT_ID)
        assert active is not None
        assert active.revoked_at is None
        assert consent.covers(active, ["openid"])
        assert consent.covers(active, ["email", "openid"])
        assert not consent.covers(active, ["openid", "profile"])

    async def test_upsert_replaces_scope_set(self, db, mail_client):
        first = await consent.upsert(db, ALICE.id, MAIL_CLIENT_ID, ["openid", "email", "profile"])
        await db.commit()
        first_id = first.id

        await consent.upsert(db, ALICE.id, MAIL_CLIENT_ID, ["openid"])
        await db.commit()

        active = await consent.find_active(db, ALICE.id, MAIL_CLIENT_ID)
        assert active.id == first_id
        assert active.scope == "openid"
        assert not consent.covers(active, ["email"])

    async def test_revoke_then_regrant(self, db, mail_client):
        await consent.upsert(db, ALICE.id, MAIL_CLIENT_ID, ["openid", "email"])
        await db.commit()

        assert await consent.revoke(db, ALICE.id, MAIL_CLIENT_ID) is True
        assert await consent.find_active(db, ALICE.id, MAIL_CLIENT_ID) is None
        assert await consent.revoke(db, ALICE.id, MAIL_CLIENT_ID) is False

        await consent.upsert(db, ALICE.id, MAIL_CLIENT_ID, ["openid"])
        await db.commit()

        active = await consent.find_active(db, ALICE.id, MAIL_CLIENT_ID)
        assert active is not None
        assert active.revoked_at is None

        # still a single row for the pair
        row = await auth_repo.get_consent(db, ALICE.id, MAIL_CLIENT_ID)
        assert row.id == active.id

    async def test_consent_is_per_user(self, db, mail_client):
        await consent.upsert(db, ALICE.id, MAIL_CLIENT_ID, ["openid"])
        await db.commit()
        assert await consent.find_active(db, "someone-else", MAIL_CLIENT_ID) is None
