from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3333

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None  # Daily rotated files when set

    # Twitter API Settings
    TWITTER_TOKEN_URL: str = "https://api.twitter.com/2/oauth2/token"
    TWITTER_REVOKE_URL: str = "https://api.twitter.com/2/oauth2/revoke"
    TWITTER_MEDIA_UPLOAD_URL: str = "https://api.x.com/2/media/upload"
    TWITTER_WEB_HOST: str = "twitter.com"
    DEFAULT_TOKEN_EXPIRES_IN: int = 3600
    REVOKE_ON_EXPIRE: bool = False

    # Tweet settings
    MAX_TWEET_LENGTH: int = 280
    MAX_IMAGES: int = 4
    MAX_VIDEOS: int = 1
    MEDIA_CHUNK_SIZE: int = 4 * 1024 * 1024
    MEDIA_STATUS_MAX_POLLS: int = 20

    # Send pacing
    PACING_MIN_DELAY_SECONDS: int = 1
    PACING_MAX_DELAY_SECONDS: int = 5

    # Caller identity
    ALLOW_ANONYMOUS_IDENTITY: bool = False

    # Refresh token propagation
    DEV_OMNIMCP_BE_URL: Optional[str] = None
    PROD_OMNIMCP_BE_URL: Optional[str] = None
    CONFIG_SYNC_DEV_MARKER: str = "omnimcp-be-dev"
    CONFIG_SYNC_PROD_MARKER: str = "omnimcp-be"

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        extra = "ignore"  # Allow extra fields from environment variables

@lru_cache()
def get_settings():
    return Settings()
