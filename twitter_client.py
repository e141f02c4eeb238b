"""
Twitter API Client
==================

Thin wrapper over the Twitter API v2 acting on behalf of one user with an
OAuth2 user-context access token.

- Tweets and profile lookups go through tweepy's ``AsyncClient``, with the
  access token passed as the bearer token (``user_auth=False``).
- Media is uploaded with httpx against the chunked v2 media endpoint
  (INIT / APPEND / FINALIZE, then STATUS polling while the platform
  processes videos).

Platform failures are translated into the service's error taxonomy so the
tool layer can render them consistently.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

import httpx
import tweepy
from tweepy.asynchronous import AsyncClient

from config import get_settings
from errors import (
    AuthenticationFailure,
    PlatformError,
    RateLimitExceeded,
    TwitterMCPError,
)
from models import PostedTweet, TwitterUser

logger = logging.getLogger(__name__)


def media_category(mime_type: str) -> str:
    if mime_type == "image/gif":
        return "tweet_gif"
    if mime_type.startswith("video/"):
        return "tweet_video"
    return "tweet_image"


def translate_tweepy_error(error: Exception) -> TwitterMCPError:
    """Map a tweepy exception onto the service's error types."""
    if isinstance(error, tweepy.TooManyRequests):
        return RateLimitExceeded("Rate limit exceeded")
    if isinstance(error, tweepy.HTTPException):
        response = error.response
        status = getattr(response, "status", None) or getattr(response, "status_code", None)
        messages = "; ".join(error.api_messages) if error.api_messages else str(error)
        if isinstance(error, tweepy.Unauthorized):
            return AuthenticationFailure(f"Twitter rejected the access token: {messages}")
        return PlatformError(messages or "Twitter API error", status=status)
    return PlatformError(f"Network error: {error}")


class TwitterClient:
    """
    Twitter API client for a single access token.

    Attributes:
        api (AsyncClient): tweepy v2 client used for tweets and profile lookups
        http_client (httpx.AsyncClient): Shared HTTP client used for media upload
    """

    def __init__(
        self,
        access_token: str,
        http_client: httpx.AsyncClient,
        settings=None,
        api: Optional[AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.access_token = access_token
        self.http_client = http_client
        self.settings = get_settings() if settings is None else settings
        self.api = AsyncClient(bearer_token=access_token) if api is None else api
        self._sleep = sleep

    @property
    def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def get_current_user(self) -> TwitterUser:
        """
        Look up the authenticated user's profile.

        Returns:
            TwitterUser: The user's id, username and display name

        Raises:
            TwitterMCPError: If the platform call fails
        """
        try:
            response = await self.api.get_me(user_auth=False, user_fields=["username", "name"])
        except tweepy.TweepyException as e:
            logger.error(f"Error getting current user: {e}")
            raise translate_tweepy_error(e) from e

        user = response.data
        if user is None:
            raise PlatformError("Twitter returned no user for the access token")
        return TwitterUser(id=str(user.id), username=user.username, name=getattr(user, "name", None))

    async def post_tweet(
        self,
        text: str,
        reply_to_tweet_id: Optional[str] = None,
        media_ids: Optional[List[str]] = None,
    ) -> PostedTweet:
        """
        Post a tweet, optionally as a reply and with attached media.

        Args:
            text (str): The tweet text
            reply_to_tweet_id (Optional[str]): Parent tweet for replies and threads
            media_ids (Optional[List[str]]): Previously uploaded media ids

        Returns:
            PostedTweet: The new tweet's id and text

        Raises:
            TwitterMCPError: If the platform call fails
        """
        kwargs = {"text": text, "user_auth": False}
        if reply_to_tweet_id:
            kwargs["in_reply_to_tweet_id"] = reply_to_tweet_id
        if media_ids:
            kwargs["media_ids"] = media_ids

        try:
            response = await self.api.create_tweet(**kwargs)
        except tweepy.TweepyException as e:
            logger.error(f"Error posting tweet: {e}")
            raise translate_tweepy_error(e) from e

        data = response.data or {}
        tweet_id = data.get("id")
        if not tweet_id:
            raise PlatformError("Could not extract tweet ID from response")

        suffix = f" (reply to {reply_to_tweet_id})" if reply_to_tweet_id else ""
        logger.info(f"Tweet posted successfully with ID: {tweet_id}{suffix}")
        return PostedTweet(id=str(tweet_id), text=data.get("text", text))

    async def upload_media(self, data: bytes, mime_type: str) -> str:
        """
        Upload media with the chunked upload protocol.

        Args:
            data (bytes): The raw media content
            mime_type (str): MIME type of the content, e.g. ``image/png``

        Returns:
            str: The platform media id

        Raises:
            TwitterMCPError: If any upload step fails
        """
        category = media_category(mime_type)
        init = await self._media_command(
            "INIT",
            data={
                "command": "INIT",
                "total_bytes": str(len(data)),
                "media_type": mime_type,
                "media_category": category,
            },
        )
        media_id = self._media_id(init)

        chunk_size = self.settings.MEDIA_CHUNK_SIZE
        for segment_index, offset in enumerate(range(0, len(data), chunk_size)):
            await self._media_command(
                "APPEND",
                data={
                    "command": "APPEND",
                    "media_id": media_id,
                    "segment_index": str(segment_index),
                },
                files={"media": ("blob", data[offset:offset + chunk_size], mime_type)},
            )

        finalize = await self._media_command("FINALIZE", data={"command": "FINALIZE", "media_id": media_id})
        await self._wait_for_processing(media_id, finalize)

        logger.info(f"Media uploaded: {media_id} ({mime_type}, {len(data)} bytes)")
        return media_id

    async def _wait_for_processing(self, media_id: str, body: dict) -> None:
        processing = self._processing_info(body)
        polls = 0
        while processing and processing.get("state") in ("pending", "in_progress"):
            if polls >= self.settings.MEDIA_STATUS_MAX_POLLS:
                raise PlatformError(f"Media {media_id} still processing after {polls} status checks")
            await self._sleep(processing.get("check_after_secs", 1))
            polls += 1
            body = await self._media_status(media_id)
            processing = self._processing_info(body)

        if processing and processing.get("state") == "failed":
            error = processing.get("error", {})
            raise PlatformError(f"Media processing failed: {error.get('message') or error}")

    async def _media_command(self, command: str, data: dict, files: Optional[dict] = None) -> dict:
        try:
            response = await self.http_client.post(
                self.settings.TWITTER_MEDIA_UPLOAD_URL,
                data=data,
                files=files,
                headers=self._auth_headers,
            )
        except httpx.HTTPError as e:
            raise PlatformError(f"Network error during media {command}: {e}") from e
        return self._check_media_response(command, response)

    async def _media_status(self, media_id: str) -> dict:
        try:
            response = await self.http_client.get(
                self.settings.TWITTER_MEDIA_UPLOAD_URL,
                params={"command": "STATUS", "media_id": media_id},
                headers=self._auth_headers,
            )
        except httpx.HTTPError as e:
            raise PlatformError(f"Network error during media STATUS: {e}") from e
        return self._check_media_response("STATUS", response)

    @staticmethod
    def _check_media_response(command: str, response: httpx.Response) -> dict:
        if response.status_code == 429:
            raise RateLimitExceeded("Rate limit exceeded")
        if response.status_code == 401:
            raise AuthenticationFailure(f"Twitter rejected the access token during media {command}")
        if not response.is_success:
            raise PlatformError(
                f"Media {command} failed: {response.text[:300]}",
                status=response.status_code,
            )
        if not response.content:
            # APPEND answers with an empty body
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    @staticmethod
    def _media_id(body: dict) -> str:
        data = body.get("data", body)
        media_id = data.get("id") or data.get("media_id_string") or data.get("media_id")
        if not media_id:
            raise PlatformError("Could not extract media ID from upload response")
        return str(media_id)

    @staticmethod
    def _processing_info(body: dict) -> Optional[dict]:
        data = body.get("data", body)
        return data.get("processing_info")
