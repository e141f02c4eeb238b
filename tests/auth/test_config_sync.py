"""
Test Refresh Token Propagation
==============================

Tests for ConfigSyncer: sibling URL derivation and the concurrent,
non-fatal writes to the configuration endpoints.
"""

import json

import httpx
import pytest

from auth.config_sync import ConfigSyncer
from config import Settings

pytestmark = [pytest.mark.unit]

DEV_URL = "https://omnimcp-be-dev.example.com/api/mcp/config"
PROD_URL = "https://omnimcp-be.example.com/api/mcp/config"


def make_syncer(handler, settings=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ConfigSyncer(http_client, settings or Settings(_env_file=None))


class TestSiblingUrl:
    """Test cases for the dev/prod URL mapping."""

    def test_dev_maps_to_prod(self, settings):
        syncer = ConfigSyncer(None, settings)
        assert syncer.sibling_url(DEV_URL) == PROD_URL

    def test_prod_maps_to_dev(self, settings):
        syncer = ConfigSyncer(None, settings)
        assert syncer.sibling_url(PROD_URL) == DEV_URL

    def test_override_urls_take_precedence(self):
        settings = Settings(
            _env_file=None,
            PROD_OMNIMCP_BE_URL="https://prod.internal/config",
            DEV_OMNIMCP_BE_URL="https://dev.internal/config",
        )
        syncer = ConfigSyncer(None, settings)

        assert syncer.sibling_url(DEV_URL) == "https://prod.internal/config"
        assert syncer.sibling_url(PROD_URL) == "https://dev.internal/config"

    def test_unrelated_url_maps_to_itself(self, settings):
        syncer = ConfigSyncer(None, settings)
        assert syncer.sibling_url("https://config.example.com/update") == "https://config.example.com/update"


class TestPropagate:
    """Test cases for ConfigSyncer.propagate."""

    @pytest.mark.asyncio
    async def test_writes_to_original_and_sibling(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        syncer = make_syncer(handler)
        outcomes = await syncer.propagate("user-1", "server-1", "new-refresh", DEV_URL)

        assert sorted(str(r.url) for r in requests) == sorted([DEV_URL, PROD_URL])
        assert all(outcome.ok for outcome in outcomes)

        body = json.loads(requests[0].content)
        assert body == {
            "user_id": "user-1",
            "mcp_server_id": "server-1",
            "config": {"TWITTER_REFRESH_TOKEN": "new-refresh"},
            "scope": "private",
        }

    @pytest.mark.asyncio
    async def test_single_write_when_sibling_is_same_url(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        syncer = make_syncer(handler)
        outcomes = await syncer.propagate("user-1", "server-1", "new-refresh", "https://config.example.com/update")

        assert len(requests) == 1
        assert len(outcomes) == 1

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_the_other(self):
        def handler(request):
            if "dev" in request.url.host:
                return httpx.Response(500, text="backend down")
            return httpx.Response(200)

        syncer = make_syncer(handler)
        outcomes = {o.url: o for o in await syncer.propagate("user-1", "server-1", "rt", PROD_URL)}

        assert outcomes[PROD_URL].ok is True
        assert outcomes[DEV_URL].ok is False
        assert outcomes[DEV_URL].status_code == 500
        assert outcomes[DEV_URL].error == "backend down"

    @pytest.mark.asyncio
    async def test_network_errors_are_captured(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        syncer = make_syncer(handler)
        outcomes = await syncer.propagate("user-1", "server-1", "rt", DEV_URL)

        assert len(outcomes) == 2
        assert not any(outcome.ok for outcome in outcomes)
        assert all("ConnectError" in outcome.error for outcome in outcomes)

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_captured(self):
        def handler(request):
            if "dev" in request.url.host:
                raise RuntimeError("transport exploded")
            return httpx.Response(200)

        syncer = make_syncer(handler)
        outcomes = {o.url: o for o in await syncer.propagate("user-1", "server-1", "rt", PROD_URL)}

        assert outcomes[PROD_URL].ok is True
        assert outcomes[DEV_URL].ok is False
        assert outcomes[DEV_URL].error == "RuntimeError: transport exploded"
