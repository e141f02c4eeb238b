"""
Authentication module for the Twitter MCP server.

This module provides the credential services behind every tool call:
- Access token caching per identity
- OAuth2 refresh-token exchange and revocation
- Propagation of rotated refresh tokens to the config backends
- Single-flight credential resolution
"""

from .token_cache import TokenCache

from .config_sync import (
    ConfigSyncer,
    SyncOutcome
)

from .oauth2 import CredentialRefresher

from .resolver import CredentialResolver

__all__ = [
    # Token cache
    "TokenCache",

    # Config propagation
    "ConfigSyncer",
    "SyncOutcome",

    # OAuth2
    "CredentialRefresher",
    "CredentialResolver"
]
