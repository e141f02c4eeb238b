"""
Media Attachment
================

Resolves the image and video sources of a tweet request to bytes and uploads
them to Twitter.

A source is either an ``http(s)`` URL, fetched as-is, or an inline data URL of
the form ``data:image/png;base64,<payload>``. The platform accepts at most
four images or one video per tweet; extra sources are dropped, not rejected.

Each item is uploaded independently: a source that cannot be loaded or
uploaded is logged and skipped. Deciding what to do when nothing uploaded is
left to the caller.
"""

import base64
import binascii
import logging
import re
from typing import List, Optional, Tuple

import httpx

from config import get_settings
from errors import InvalidMedia, TwitterMCPError
from twitter_client import TwitterClient

logger = logging.getLogger(__name__)

DATA_URL_PATTERNS = {
    "image": re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL),
    "video": re.compile(r"^data:(video/[\w.+-]+);base64,(.+)$", re.DOTALL),
}

DEFAULT_MIME_TYPES = {
    "image": "image/jpeg",
    "video": "video/mp4",
}


class MediaUploader:
    """
    Loads media sources and uploads them through a TwitterClient.

    Args:
        http_client (httpx.AsyncClient): Shared HTTP client used to fetch URLs
        settings: Application settings; defaults to ``get_settings()``
    """

    def __init__(self, http_client: httpx.AsyncClient, settings=None):
        self.http_client = http_client
        self.settings = get_settings() if settings is None else settings

    async def load_media(self, source: str, kind: str) -> Tuple[bytes, str]:
        """
        Resolve a media source to its bytes and MIME type.

        Args:
            source (str): An http(s) URL or a base64 data URL
            kind (str): ``"image"`` or ``"video"``

        Returns:
            Tuple[bytes, str]: The content and its MIME type

        Raises:
            InvalidMedia: If the source cannot be fetched or decoded
        """
        if source.startswith("http"):
            try:
                response = await self.http_client.get(source, follow_redirects=True)
                response.raise_for_status()
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise InvalidMedia(f"Invalid Media: cannot fetch {source}: {e}") from e

            content_type = response.headers.get("content-type")
            mime_type = content_type.split(";")[0].strip() if content_type else DEFAULT_MIME_TYPES[kind]
            content = response.content
        else:
            match = DATA_URL_PATTERNS[kind].match(source)
            if not match:
                raise InvalidMedia("Invalid Media")

            mime_type = match.group(1)
            try:
                content = base64.b64decode(match.group(2), validate=False)
            except (binascii.Error, ValueError) as e:
                raise InvalidMedia(f"Invalid Media: {e}") from e

        if not content:
            raise InvalidMedia("Invalid Media")
        return content, mime_type

    async def upload_one(self, client: TwitterClient, source: str, kind: str) -> str:
        data, mime_type = await self.load_media(source, kind)
        return await client.upload_media(data, mime_type)

    async def upload_all(
        self,
        client: TwitterClient,
        images: Optional[List[str]] = None,
        videos: Optional[List[str]] = None,
    ) -> List[str]:
        """
        Upload up to MAX_IMAGES images and MAX_VIDEOS videos.

        Failed items are skipped; the ids of the successful uploads are
        returned in request order, images first.

        Args:
            client (TwitterClient): Client for the caller's account
            images (Optional[List[str]]): Image sources
            videos (Optional[List[str]]): Video sources

        Returns:
            List[str]: Uploaded media ids
        """
        media_ids = []
        batches = (
            ("image", (images or [])[:self.settings.MAX_IMAGES]),
            ("video", (videos or [])[:self.settings.MAX_VIDEOS]),
        )
        for kind, sources in batches:
            for source in sources:
                try:
                    media_ids.append(await self.upload_one(client, source, kind))
                except TwitterMCPError as e:
                    logger.warning(f"{kind} upload failed, skipping: {e.message}")
        return media_ids
