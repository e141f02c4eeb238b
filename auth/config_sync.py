"""
Refresh Token Propagation
=========================

Twitter rotates the refresh token on every refresh: the token used for the
grant stops working as soon as a new one is issued. The new token therefore
has to reach the external account-configuration store right away, or the
next process to start with the stored token will fail to authenticate.

The configuration store runs as a dev/prod pair. Each rotated token is
written to the URL supplied by the caller and to its sibling in the other
environment. The two writes run concurrently and independently. Their
outcomes are reported through the log only, never to the caller of the
refresh, since the access token obtained by the refresh is valid either way.
"""

import asyncio
import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel

from config import get_settings

logger = logging.getLogger(__name__)


class SyncOutcome(BaseModel):
    """Result of one propagation call."""
    url: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class ConfigSyncer:
    """
    Writes rotated refresh tokens to the configuration-update endpoints.

    Args:
        http_client (httpx.AsyncClient): Shared outbound HTTP client
        settings: Application settings; defaults to ``get_settings()``
    """

    def __init__(self, http_client: httpx.AsyncClient, settings=None):
        self.http_client = http_client
        self.settings = get_settings() if settings is None else settings

    def sibling_url(self, url: str) -> str:
        """
        Derive the other environment's update URL.

        A dev URL maps to prod and vice versa, by swapping the environment
        marker in the hostname. An override URL configured for the target
        environment wins over the derived one.
        """
        dev_marker = self.settings.CONFIG_SYNC_DEV_MARKER
        prod_marker = self.settings.CONFIG_SYNC_PROD_MARKER

        if dev_marker in url:
            if self.settings.PROD_OMNIMCP_BE_URL:
                return self.settings.PROD_OMNIMCP_BE_URL
            return url.replace(dev_marker, prod_marker)

        if self.settings.DEV_OMNIMCP_BE_URL:
            return self.settings.DEV_OMNIMCP_BE_URL
        return url.replace(prod_marker, dev_marker)

    async def propagate(self, user_id: str, server_id: str, refresh_token: str, url: str) -> List[SyncOutcome]:
        """
        Send the rotated refresh token to the original and sibling endpoints.

        Never raises. Each call's outcome is logged and returned.

        Args:
            user_id (str): Caller user id
            server_id (str): MCP server id of the caller's installation
            refresh_token (str): The newly issued refresh token
            url (str): The update URL supplied by the caller

        Returns:
            List[SyncOutcome]: One outcome per distinct target URL
        """
        targets = [url]
        sibling = self.sibling_url(url)
        if sibling and sibling != url:
            targets.append(sibling)

        logger.info(f"Propagating refresh token for {user_id}:{server_id} to {targets}")

        results = await asyncio.gather(
            *(self._update_config(target, user_id, server_id, refresh_token) for target in targets),
            return_exceptions=True,
        )

        outcomes = []
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                result = SyncOutcome(url=target, ok=False, error=f"{type(result).__name__}: {result}")
            outcomes.append(result)

        for outcome in outcomes:
            if outcome.ok:
                logger.info(f"Config updated at {outcome.url} (status {outcome.status_code})")
            else:
                logger.warning(
                    f"Failed to update config at {outcome.url}: "
                    f"status={outcome.status_code} error={outcome.error}"
                )
        return outcomes

    async def _update_config(self, url: str, user_id: str, server_id: str, refresh_token: str) -> SyncOutcome:
        body = {
            "user_id": user_id,
            "mcp_server_id": server_id,
            "config": {
                "TWITTER_REFRESH_TOKEN": refresh_token,
            },
            "scope": "private",
        }
        try:
            response = await self.http_client.post(url, json=body)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return SyncOutcome(url=url, ok=False, error=f"{type(e).__name__}: {e}")

        if response.is_success:
            return SyncOutcome(url=url, ok=True, status_code=response.status_code)
        return SyncOutcome(
            url=url,
            ok=False,
            status_code=response.status_code,
            error=response.text[:500],
        )
