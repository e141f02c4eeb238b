from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

DEFAULT_MAX_TWEET_LENGTH = 280


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Out-of-band request headers carrying the caller's credentials and identity
CALLER_HEADERS = (
    "twitter_client_id",
    "twitter_client_secret",
    "twitter_refresh_token",
    "access_token",
    "user_id",
    "server_id",
    "update_config_url",
)


def make_identity_key(user_id: Optional[str], server_id: Optional[str]) -> str:
    """Build the composite ``user_id:server_id`` key scoping cache and pacing state."""
    return f"{user_id or ''}:{server_id or ''}"


class CachedCredential(BaseModel):
    """Last-known-good access token for one identity."""
    access_token: str
    expires_at: datetime
    refresh_token: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class PacingState(BaseModel):
    """Earliest time the identity may post again."""
    next_allowed_send_time: datetime
    delay_seconds: int


class PacingDecision(BaseModel):
    allowed: bool
    wait_seconds: Optional[int] = None


class TokenResponse(BaseModel):
    """JSON body returned by the OAuth2 token endpoint."""
    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class OAuth2ClientConfig(BaseModel):
    client_id: str
    client_secret: str


class CallerContext(BaseModel):
    """
    Caller credentials and identity taken from the tool invocation headers.

    The identity key is always derived from ``user_id`` and ``server_id``;
    a cached token is never shared across identities.
    """
    twitter_client_id: Optional[str] = None
    twitter_client_secret: Optional[str] = None
    twitter_refresh_token: Optional[str] = None
    access_token: Optional[str] = None
    user_id: Optional[str] = None
    server_id: Optional[str] = None
    update_config_url: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Optional[Mapping[str, Any]]) -> "CallerContext":
        if not headers:
            return cls()
        values = {}
        for name in CALLER_HEADERS:
            value = headers.get(name)
            if value is None:
                # Proxies commonly rewrite underscores to dashes
                value = headers.get(name.replace("_", "-"))
            if value:
                values[name] = str(value)
        return cls(**values)

    @property
    def identity_key(self) -> str:
        return make_identity_key(self.user_id, self.server_id)

    @property
    def has_identity(self) -> bool:
        return bool(self.user_id and self.server_id)

    def oauth_config(self) -> OAuth2ClientConfig:
        return OAuth2ClientConfig(
            client_id=self.twitter_client_id or "",
            client_secret=self.twitter_client_secret or "",
        )


class PostTweetRequest(BaseModel):
    """
    Arguments of the ``post_tweet`` tool.

    The maximum text length can be overridden per validation call by passing
    ``context={"max_tweet_length": n}`` to ``model_validate``.
    """
    text: str = Field(min_length=1)
    reply_to_tweet_id: Optional[str] = None
    images: Optional[List[str]] = None
    videos: Optional[List[str]] = None

    @field_validator("text")
    @classmethod
    def check_length(cls, value: str, info: ValidationInfo) -> str:
        max_length = DEFAULT_MAX_TWEET_LENGTH
        if info.context and info.context.get("max_tweet_length"):
            max_length = info.context["max_tweet_length"]
        if len(value) > max_length:
            raise ValueError(f"Tweet cannot exceed {max_length} characters")
        return value

    @property
    def has_media(self) -> bool:
        return bool(self.images) or bool(self.videos)


class PostTweetThreadRequest(BaseModel):
    """Arguments of the ``post_tweet_thread`` tool; every tweet is validated before any is posted."""
    tweets: List[PostTweetRequest]


class PostedTweet(BaseModel):
    id: str
    text: str = ""


class TwitterUser(BaseModel):
    id: str
    username: str
    name: Optional[str] = None


class IdentityRequest(BaseModel):
    """Body of the administrative cache and pacing endpoints."""
    user_id: Optional[str] = None
    server_id: Optional[str] = None
