"""
Admin Routes
============

Operational side channel for inspecting and resetting the in-process state:
- Clear or inspect one identity's cached access token
- Inspect or clear one identity's send cool-down
- List every cached identity

All POST endpoints take ``{"user_id": ..., "server_id": ...}`` and answer 400
when either is missing.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from auth.oauth2 import CredentialRefresher
from auth.token_cache import TokenCache
from config import Settings
from errors import TokenRefreshError
from models import IdentityRequest, OAuth2ClientConfig, make_identity_key
from services.send_pacer import SendPacer

# Set up logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["admin"])


class ExpiredTokenRequest(IdentityRequest):
    """Request model for clearing a cached token; client credentials enable revocation."""
    twitter_client_id: Optional[str] = None
    twitter_client_secret: Optional[str] = None


def get_token_cache(request: Request) -> TokenCache:
    return request.app.state.token_cache


def get_send_pacer(request: Request) -> SendPacer:
    return request.app.state.send_pacer


def get_refresher(request: Request) -> CredentialRefresher:
    return request.app.state.refresher


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_identity(body: IdentityRequest) -> str:
    """Return the identity key, or fail with 400 if an id is missing."""
    if not body.user_id or not body.server_id:
        raise HTTPException(
            status_code=400,
            detail="user_id and server_id are required"
        )
    return make_identity_key(body.user_id, body.server_id)


@router.post("/expired_token")
async def expired_token(
    body: ExpiredTokenRequest,
    token_cache: TokenCache = Depends(get_token_cache),
    refresher: CredentialRefresher = Depends(get_refresher),
    settings: Settings = Depends(get_app_settings),
):
    """Drop the cached access token so the next post refreshes it."""
    cache_key = require_identity(body)
    cached = token_cache.get(cache_key)

    if cached and settings.REVOKE_ON_EXPIRE and body.twitter_client_id and body.twitter_client_secret:
        config = OAuth2ClientConfig(
            client_id=body.twitter_client_id,
            client_secret=body.twitter_client_secret
        )
        try:
            await refresher.revoke(config, cached.access_token)
        except TokenRefreshError as e:
            logger.warning(f"Failed to revoke token for {cache_key}: {e.message}")

    deleted = token_cache.invalidate(cache_key)

    return {
        "success": True,
        "message": "Token cache cleared successfully",
        "user_id": body.user_id,
        "server_id": body.server_id,
        "cache_key": cache_key,
        "deleted": deleted
    }


@router.post("/get_token_cache")
async def get_token_cache_status(
    body: IdentityRequest,
    token_cache: TokenCache = Depends(get_token_cache),
):
    cache_key = require_identity(body)

    return {
        "success": True,
        "message": "Token cache status retrieved successfully",
        "user_id": body.user_id,
        "server_id": body.server_id,
        "cache_key": cache_key,
        "cache_status": token_cache.status(cache_key)
    }


@router.post("/get_delay_status")
async def get_delay_status(
    body: IdentityRequest,
    send_pacer: SendPacer = Depends(get_send_pacer),
):
    cache_key = require_identity(body)

    return {
        "success": True,
        "message": "User delay status retrieved successfully",
        "user_id": body.user_id,
        "server_id": body.server_id,
        "delay_status": send_pacer.status(cache_key)
    }


@router.post("/clear_delay")
async def clear_delay(
    body: IdentityRequest,
    send_pacer: SendPacer = Depends(get_send_pacer),
):
    cache_key = require_identity(body)
    deleted = send_pacer.clear(cache_key)

    return {
        "success": True,
        "message": "User delay cleared successfully",
        "user_id": body.user_id,
        "server_id": body.server_id,
        "deleted": deleted
    }


@router.get("/cache/status")
async def cache_status(token_cache: TokenCache = Depends(get_token_cache)):
    """List the cache status of every identity."""
    statuses = token_cache.status_all()

    return {
        "success": True,
        "message": "Token cache status retrieved successfully",
        "cache_count": len(statuses),
        "cache_status": statuses
    }


@router.get("/health")
async def health():
    return {"status": "ok"}
