"""
Twitter OAuth2 Credential Refresh
=================================

This module performs the OAuth2 refresh-token grant against Twitter's token
endpoint and hands every newly issued refresh token to the configuration
propagation layer.

The CredentialRefresher class provides methods for:
- Exchanging a refresh token for a new access token
- Propagating the rotated refresh token to the external config stores
- Revoking an access token

Failures talking to the token endpoint are fatal to the refresh and raised as
``TokenRefreshError``. Failures propagating the new refresh token are not:
they are logged by ``ConfigSyncer`` and the fresh access token is returned
regardless.
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from auth.config_sync import ConfigSyncer
from config import get_settings
from errors import TokenRefreshError
from models import OAuth2ClientConfig, TokenResponse

logger = logging.getLogger(__name__)


def mask(value: Optional[str]) -> str:
    """Render a secret for log output."""
    return "***MASKED***" if value else "NOT_PROVIDED"


class CredentialRefresher:
    """
    Client for the OAuth2 refresh-token grant.

    Args:
        http_client (httpx.AsyncClient): Shared outbound HTTP client
        config_syncer (Optional[ConfigSyncer]): Propagation layer for rotated
            refresh tokens; built from ``http_client`` when omitted
        settings: Application settings; defaults to ``get_settings()``
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config_syncer: Optional[ConfigSyncer] = None,
        settings=None,
    ):
        self.http_client = http_client
        self.settings = get_settings() if settings is None else settings
        self.config_syncer = ConfigSyncer(http_client, self.settings) if config_syncer is None else config_syncer

    @staticmethod
    def basic_auth(config: OAuth2ClientConfig) -> httpx.BasicAuth:
        return httpx.BasicAuth(config.client_id, config.client_secret)

    async def refresh(
        self,
        config: OAuth2ClientConfig,
        refresh_token: str,
        user_id: Optional[str] = None,
        server_id: Optional[str] = None,
        update_config_url: Optional[str] = None,
    ) -> TokenResponse:
        """
        Exchange a refresh token for a new access token.

        Args:
            config (OAuth2ClientConfig): The app's client id and secret
            refresh_token (str): The caller's current refresh token
            user_id (Optional[str]): Caller user id, used for propagation
            server_id (Optional[str]): Caller server id, used for propagation
            update_config_url (Optional[str]): Caller's config-update endpoint

        Returns:
            TokenResponse: The parsed token response

        Raises:
            TokenRefreshError: If the token endpoint is unreachable, rejects
                the grant, or returns an unusable body
        """
        token_url = self.settings.TWITTER_TOKEN_URL
        logger.info(
            f"Refreshing token for {user_id}:{server_id} "
            f"(client_id={config.client_id}, client_secret={mask(config.client_secret)}, "
            f"refresh_token={mask(refresh_token)})"
        )

        try:
            response = await self.http_client.post(
                token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                },
                auth=self.basic_auth(config),
            )
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            logger.error(f"Cannot reach token endpoint {token_url}: {e}")
            raise TokenRefreshError(
                f"Network connectivity issue: Cannot reach Twitter API at {token_url}: {e}",
                error="network_error",
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Network error during token refresh: {e}")
            raise TokenRefreshError(
                f"OAuth2 token refresh network error: {e}",
                error="network_error",
            ) from e

        logger.debug(f"Token endpoint responded with status {response.status_code}")

        if not response.is_success:
            error = self._error_body(response)
            description = error.get("error_description") or error.get("error")
            logger.error(f"Token refresh failed for {user_id}:{server_id}: {description} (Status: {response.status_code})")
            raise TokenRefreshError(
                f"OAuth2 token refresh failed: {description} (Status: {response.status_code})",
                error=error.get("error", ""),
                error_description=error.get("error_description"),
                status=response.status_code,
            )

        try:
            result = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unusable token response: {e}")
            raise TokenRefreshError(
                f"OAuth2 token refresh returned an invalid response: {e}",
                error="invalid_response",
                status=response.status_code,
            ) from e

        logger.info(
            f"Token refreshed for {user_id}:{server_id} "
            f"(expires_in={result.expires_in}, refresh_token={mask(result.refresh_token)})"
        )

        if user_id and server_id and update_config_url and result.refresh_token:
            await self.config_syncer.propagate(user_id, server_id, result.refresh_token, update_config_url)
        else:
            logger.info(
                "Skipping config update - missing required parameters: "
                f"has_user_id={bool(user_id)}, has_server_id={bool(server_id)}, "
                f"has_update_config_url={bool(update_config_url)}, "
                f"has_refresh_token={bool(result.refresh_token)}"
            )

        return result

    async def revoke(self, config: OAuth2ClientConfig, token: str) -> None:
        """
        Revoke an access token.

        Raises:
            TokenRefreshError: If the revoke endpoint rejects the request
        """
        try:
            response = await self.http_client.post(
                self.settings.TWITTER_REVOKE_URL,
                data={
                    "token": token,
                    "token_type_hint": "access_token",
                },
                auth=self.basic_auth(config),
            )
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"OAuth2 token revocation network error: {e}", error="network_error") from e

        if not response.is_success:
            error = self._error_body(response)
            description = error.get("error_description") or error.get("error")
            raise TokenRefreshError(
                f"OAuth2 token revocation failed: {description}",
                error=error.get("error", ""),
                error_description=error.get("error_description"),
                status=response.status_code,
            )
        logger.info("Access token revoked")

    @staticmethod
    def _error_body(response: httpx.Response) -> dict:
        try:
            error = response.json()
        except ValueError:
            return {"error": "parse_error", "error_description": response.text}
        if not isinstance(error, dict):
            return {"error": "parse_error", "error_description": response.text}
        return error
