"""
Credential Resolution
=====================

Maps a caller to a usable access token: a cached token that has not expired
is returned directly, otherwise the refresh flow runs and the cache is
repopulated.

Concurrent requests for the same identity share one refresh. A per-identity
``asyncio.Lock`` guards the check-then-refresh sequence, and a waiter that
acquires the lock after another request refreshed re-reads the cache instead
of spending the (already rotated) refresh token a second time. Different
identities never wait on each other.
"""

import asyncio
import logging
import weakref
from datetime import datetime, timedelta
from typing import Callable

from auth.oauth2 import CredentialRefresher
from auth.token_cache import TokenCache
from config import get_settings
from errors import AuthenticationFailure, TokenRefreshError
from models import CachedCredential, CallerContext, utcnow

logger = logging.getLogger(__name__)


class CredentialResolver:
    """
    Cache-or-refresh access token lookup.

    Args:
        token_cache (TokenCache): Process-wide token cache
        refresher (CredentialRefresher): OAuth2 refresh client
        settings: Application settings; defaults to ``get_settings()``
        clock (Callable[[], datetime]): Returns the current UTC time
    """

    def __init__(
        self,
        token_cache: TokenCache,
        refresher: CredentialRefresher,
        settings=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.token_cache = token_cache
        self.refresher = refresher
        self.settings = get_settings() if settings is None else settings
        self._clock = clock
        # Entries vanish once no request holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def resolve(self, caller: CallerContext) -> str:
        """
        Return a currently valid access token for the caller.

        Args:
            caller (CallerContext): Caller credentials and identity

        Returns:
            str: The access token

        Raises:
            AuthenticationFailure: If no token is cached and the refresh flow
                cannot produce one
        """
        key = caller.identity_key

        cached = self.token_cache.get_valid(key)
        if cached is not None:
            logger.info(f"{key} using cached token")
            return cached.access_token

        async with self._lock_for(key):
            # Another request may have refreshed while we waited
            cached = self.token_cache.get_valid(key)
            if cached is not None:
                logger.info(f"{key} using token refreshed by a concurrent request")
                return cached.access_token

            if not caller.twitter_refresh_token:
                if caller.access_token:
                    logger.info(f"{key} no refresh token, using caller-supplied access token")
                    return caller.access_token
                raise AuthenticationFailure("auth failed with error: no refresh token provided")

            if not caller.twitter_client_id or not caller.twitter_client_secret:
                raise AuthenticationFailure("auth failed with error: client id and client secret are required")

            logger.info(f"{key} refreshing token")
            now = self._clock()
            try:
                token = await self.refresher.refresh(
                    caller.oauth_config(),
                    caller.twitter_refresh_token,
                    caller.user_id,
                    caller.server_id,
                    caller.update_config_url,
                )
            except TokenRefreshError as e:
                logger.info(f"{key} token refresh error: {e.message}")
                raise AuthenticationFailure(f"auth failed with error: {e.message}") from e

            expires_in = token.expires_in or self.settings.DEFAULT_TOKEN_EXPIRES_IN
            self.token_cache.put(
                key,
                CachedCredential(
                    access_token=token.access_token,
                    expires_at=now + timedelta(seconds=expires_in),
                    refresh_token=token.refresh_token,
                ),
            )
            return token.access_token

