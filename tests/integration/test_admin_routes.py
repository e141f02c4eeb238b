"""
Integration tests for the admin HTTP endpoints
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from auth.token_cache import TokenCache
from config import Settings
from errors import TokenRefreshError
from main import create_app
from models import CachedCredential
from services.send_pacer import SendPacer

pytestmark = [pytest.mark.integration]

IDENTITY = {"user_id": "user-1", "server_id": "server-1"}


@pytest.fixture
def app(settings, token_cache, send_pacer):
    return create_app(settings=settings, token_cache=token_cache, send_pacer=send_pacer)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def cached(token_cache, clock):
    credential = CachedCredential(access_token="access-1", expires_at=clock() + timedelta(seconds=600))
    token_cache.put("user-1:server-1", credential)
    return credential


class TestTokenCacheEndpoints:
    """Test the token cache endpoints"""

    def test_expired_token_clears_entry(self, client, cached):
        response = client.post("/expired_token", json=IDENTITY)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["cache_key"] == "user-1:server-1"
        assert data["deleted"] is True

        status = client.post("/get_token_cache", json=IDENTITY).json()
        assert status["cache_status"] == {"exists": False}

    def test_expired_token_without_entry(self, client):
        data = client.post("/expired_token", json=IDENTITY).json()

        assert data["success"] is True
        assert data["deleted"] is False

    def test_get_token_cache(self, client, cached):
        data = client.post("/get_token_cache", json=IDENTITY).json()

        assert data["cache_status"] == {
            "exists": True,
            "expires_at": cached.expires_at.isoformat(),
            "is_expired": False,
        }

    def test_cache_status_lists_identities(self, client, cached):
        data = client.get("/cache/status").json()

        assert data["cache_count"] == 1
        assert data["cache_status"]["user-1:server-1"]["user_id"] == "user-1"

    @pytest.mark.parametrize("path", ["/expired_token", "/get_token_cache", "/get_delay_status", "/clear_delay"])
    @pytest.mark.parametrize("body", [{}, {"user_id": "user-1"}, {"server_id": "server-1"}, {"user_id": "", "server_id": "s"}])
    def test_identity_required(self, client, path, body):
        response = client.post(path, json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == "user_id and server_id are required"


class TestRevokeOnExpire:
    """Test optional revocation when clearing a token"""

    def test_revokes_when_enabled(self, token_cache, send_pacer, cached):
        app = create_app(
            settings=Settings(_env_file=None, REVOKE_ON_EXPIRE=True),
            token_cache=token_cache,
            send_pacer=send_pacer,
        )
        app.state.refresher = MagicMock()
        app.state.refresher.revoke = AsyncMock()

        body = dict(IDENTITY, twitter_client_id="cid", twitter_client_secret="secret")
        data = TestClient(app).post("/expired_token", json=body).json()

        assert data["deleted"] is True
        config, token = app.state.refresher.revoke.await_args.args
        assert config.client_id == "cid"
        assert token == "access-1"

    def test_revocation_failure_still_clears(self, token_cache, send_pacer, cached):
        app = create_app(
            settings=Settings(_env_file=None, REVOKE_ON_EXPIRE=True),
            token_cache=token_cache,
            send_pacer=send_pacer,
        )
        app.state.refresher = MagicMock()
        app.state.refresher.revoke = AsyncMock(side_effect=TokenRefreshError("revoke failed", status=503))

        body = dict(IDENTITY, twitter_client_id="cid", twitter_client_secret="secret")
        response = TestClient(app).post("/expired_token", json=body)

        assert response.status_code == 200
        assert "user-1:server-1" not in token_cache

    def test_no_revocation_by_default(self, app, client, cached):
        app.state.refresher = MagicMock()
        app.state.refresher.revoke = AsyncMock()

        body = dict(IDENTITY, twitter_client_id="cid", twitter_client_secret="secret")
        client.post("/expired_token", json=body)

        app.state.refresher.revoke.assert_not_awaited()


class TestDelayEndpoints:
    """Test the send pacing endpoints"""

    def test_delay_status_and_clear(self, client, send_pacer):
        send_pacer.record_send("user-1:server-1", 3)

        status = client.post("/get_delay_status", json=IDENTITY).json()
        assert status["delay_status"]["exists"] is True
        assert status["delay_status"]["wait_seconds"] == 3

        cleared = client.post("/clear_delay", json=IDENTITY).json()
        assert cleared["deleted"] is True
        assert send_pacer.can_send("user-1:server-1").allowed is True

        status = client.post("/get_delay_status", json=IDENTITY).json()
        assert status["delay_status"] == {"exists": False}


class TestApplication:
    """Test the application wiring"""

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_lifespan_starts_mcp_session_manager(self, app):
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200

    def test_injected_empty_state_is_used(self, settings, clock):
        token_cache = TokenCache(clock=clock)
        send_pacer = SendPacer(min_delay=1, max_delay=1, clock=clock)

        app = create_app(settings=settings, token_cache=token_cache, send_pacer=send_pacer)

        assert len(token_cache) == 0
        assert app.state.token_cache is token_cache
        assert app.state.send_pacer is send_pacer
        assert app.state.settings is settings
