"""
Tweet Posting Service
=====================

This module implements the per-request posting flow behind the ``post_tweet``
and ``post_tweet_thread`` tools.

The TweetService class ties together:
- SendPacer: waits out the caller's cool-down before posting
- CredentialResolver: obtains a valid access token (cache or refresh)
- MediaUploader: loads and uploads attached images and videos
- TwitterClient: issues the post and looks up the caller's profile

Posting a thread is a sequence of single posts, each replying to the previous
one. There is no rollback: if a tweet in the middle fails, the tweets already
published stay published and the error is raised to the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

import httpx
from pydantic import ValidationError

from auth.resolver import CredentialResolver
from config import get_settings
from errors import InvalidMedia, InvalidParameters
from models import CallerContext, PostTweetRequest, PostTweetThreadRequest
from services.media import MediaUploader
from services.send_pacer import SendPacer
from twitter_client import TwitterClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], TwitterClient]


def validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class TweetService:
    """
    Orchestrates credential resolution, pacing, media upload and posting.

    Args:
        resolver (CredentialResolver): Access token lookup
        send_pacer (SendPacer): Per-identity cool-down gate
        media_uploader (MediaUploader): Media loading and upload
        client_factory (ClientFactory): Builds a TwitterClient for an access token
        settings: Application settings; defaults to ``get_settings()``
        sleep (Callable): Coroutine used to wait out the cool-down
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        send_pacer: SendPacer,
        media_uploader: MediaUploader,
        client_factory: ClientFactory,
        settings=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.resolver = resolver
        self.send_pacer = send_pacer
        self.media_uploader = media_uploader
        self.client_factory = client_factory
        self.settings = get_settings() if settings is None else settings
        self._sleep = sleep

    @classmethod
    def create(
        cls,
        resolver: CredentialResolver,
        send_pacer: SendPacer,
        http_client: httpx.AsyncClient,
        settings=None,
    ) -> "TweetService":
        """Build a service whose clients share ``http_client``."""
        settings = get_settings() if settings is None else settings
        return cls(
            resolver=resolver,
            send_pacer=send_pacer,
            media_uploader=MediaUploader(http_client, settings),
            client_factory=lambda access_token: TwitterClient(access_token, http_client, settings),
            settings=settings,
        )

    def check_identity(self, caller: CallerContext) -> None:
        if caller.has_identity or self.settings.ALLOW_ANONYMOUS_IDENTITY:
            return
        raise InvalidParameters("Invalid parameters: user_id and server_id headers are required")

    async def get_client(self, caller: CallerContext) -> TwitterClient:
        access_token = await self.resolver.resolve(caller)
        return self.client_factory(access_token)

    async def wait_for_turn(self, caller: CallerContext) -> None:
        """Suspend until the caller's cool-down has elapsed."""
        if not caller.has_identity:
            return

        decision = self.send_pacer.can_send(caller.identity_key)
        if decision.allowed:
            return

        wait_seconds = decision.wait_seconds or 0
        logger.info(f"{caller.user_id} rate limited, waiting {wait_seconds} seconds")
        await self._sleep(wait_seconds)
        logger.info(f"{caller.user_id} wait completed, proceeding with tweet")

    def validate_tweet(self, args: Any) -> PostTweetRequest:
        if isinstance(args, PostTweetRequest):
            args = args.model_dump()
        try:
            return PostTweetRequest.model_validate(
                args,
                context={"max_tweet_length": self.settings.MAX_TWEET_LENGTH},
            )
        except ValidationError as e:
            raise InvalidParameters(f"Invalid parameters: {validation_message(e)}") from e

    async def post_once(self, args: Any, caller: CallerContext) -> str:
        """
        Post a single tweet for the caller.

        Args:
            args (Any): ``post_tweet`` arguments (dict or PostTweetRequest)
            caller (CallerContext): Caller credentials and identity

        Returns:
            str: The new tweet's id

        Raises:
            InvalidParameters: If the arguments are invalid
            AuthenticationFailure: If no access token can be obtained
            InvalidMedia: If media was requested but none could be uploaded
            TwitterMCPError: If the platform rejects the post
        """
        self.check_identity(caller)
        await self.wait_for_turn(caller)

        client = await self.get_client(caller)
        request = self.validate_tweet(args)

        media_ids = await self.media_uploader.upload_all(client, request.images, request.videos)
        if request.has_media and not media_ids:
            raise InvalidMedia("Invalid parameters: Invalid media")

        try:
            tweet = await client.post_tweet(request.text, request.reply_to_tweet_id, media_ids)
        except Exception as e:
            logger.info(f"{caller.user_id} post failed: {e}")
            raise

        logger.info(f"{caller.user_id} tweet posted: {tweet.id}")
        if caller.has_identity:
            delay_seconds = self.send_pacer.random_delay()
            self.send_pacer.record_send(caller.identity_key, delay_seconds)
            logger.info(f"{caller.user_id} next send allowed in {delay_seconds} seconds")
        return tweet.id

    async def post_thread(self, args: Any, caller: CallerContext) -> List[str]:
        """
        Post tweets in order, each replying to the previous one.

        The whole thread is validated before the first tweet goes out. Posting
        stops at the first failure; tweets already posted are not removed.

        Args:
            args (Any): ``post_tweet_thread`` arguments
            caller (CallerContext): Caller credentials and identity

        Returns:
            List[str]: Ids of the posted tweets, in thread order
        """
        try:
            thread = PostTweetThreadRequest.model_validate(
                args,
                context={"max_tweet_length": self.settings.MAX_TWEET_LENGTH},
            )
        except ValidationError as e:
            raise InvalidParameters(f"Invalid parameters: {validation_message(e)}") from e

        tweet_ids: List[str] = []
        previous_id: Optional[str] = None
        for tweet in thread.tweets:
            if previous_id:
                tweet = tweet.model_copy(update={"reply_to_tweet_id": previous_id})
            previous_id = await self.post_once(tweet, caller)
            tweet_ids.append(previous_id)
        return tweet_ids

    async def build_status_urls(self, caller: CallerContext, tweet_ids: List[str]) -> List[str]:
        """Resolve the caller's profile once and build a shareable URL per tweet."""
        client = await self.get_client(caller)
        user = await client.get_current_user()
        host = self.settings.TWITTER_WEB_HOST
        return [f"https://{host}/{user.username}/status/{tweet_id}" for tweet_id in tweet_ids]
