"""
Shared pytest fixtures and configuration
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add the project root to Python path to make imports work
sys.path.insert(0, str(Path(__file__).parent.parent))

from auth.token_cache import TokenCache
from config import Settings
from models import CallerContext, PostedTweet, TwitterUser
from services.send_pacer import SendPacer


class FakeClock:
    """Controllable replacement for ``models.utcnow``."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings() -> Settings:
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def token_cache(clock) -> TokenCache:
    return TokenCache(clock=clock)


@pytest.fixture
def send_pacer(clock) -> SendPacer:
    return SendPacer(min_delay=3, max_delay=3, clock=clock)


@pytest.fixture
def caller() -> CallerContext:
    """A fully identified caller with OAuth2 app credentials and a refresh token."""
    return CallerContext(
        twitter_client_id="test-client-id",
        twitter_client_secret="test-client-secret",
        twitter_refresh_token="test-refresh-token",
        user_id="user-1",
        server_id="server-1",
    )


@pytest.fixture
def fake_client():
    """
    Stand-in for TwitterClient.

    Each post returns the next id from 1 upwards; the account is @alice.
    """
    client = MagicMock()
    client.post_tweet = AsyncMock(side_effect=[PostedTweet(id=str(i)) for i in range(1, 20)])
    client.get_current_user = AsyncMock(return_value=TwitterUser(id="42", username="alice", name="Alice"))
    client.upload_media = AsyncMock(return_value="media-1")
    return client
