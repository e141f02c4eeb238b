"""
Token Cache
===========

In-process cache of OAuth2 access tokens keyed by caller identity
(``user_id:server_id``).

The cache decides whether the refresh flow needs to run: a credential that is
present and not yet expired is used as-is. Entries live until they are
overwritten by a newer refresh, invalidated through the admin API, or the
process restarts. Nothing is persisted.

The cache itself does no locking. Reads and writes are single dict
operations that cannot be interleaved on the event loop; coordinating the
check-then-refresh sequence is the job of ``auth.resolver``.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional, Any

from models import CachedCredential, utcnow

logger = logging.getLogger(__name__)


class TokenCache:
    """
    Mapping from identity key to the last-known-good access credential.

    Args:
        clock (Callable[[], datetime]): Returns the current UTC time
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._entries: Dict[str, CachedCredential] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CachedCredential]:
        """Return the cached credential for ``key``, expired or not."""
        return self._entries.get(key)

    def get_valid(self, key: str) -> Optional[CachedCredential]:
        """Return the cached credential for ``key`` only if it has not expired."""
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def put(self, key: str, credential: CachedCredential) -> None:
        self._entries[key] = credential
        logger.info(f"Token cached for {key}, expires at {credential.expires_at.isoformat()}")

    def invalidate(self, key: str) -> bool:
        """
        Remove the cached credential for an identity.

        Args:
            key (str): The identity key

        Returns:
            bool: True if an entry was present and removed
        """
        deleted = self._entries.pop(key, None) is not None
        logger.info(f"Token cache cleared for {key}, deleted: {deleted}")
        return deleted

    def status(self, key: str) -> Dict[str, Any]:
        """
        Describe the cache entry for one identity.

        Returns:
            Dict[str, Any]: ``{"exists": False}`` when absent, otherwise
                ``exists``, ``expires_at`` (ISO 8601) and ``is_expired``
        """
        entry = self._entries.get(key)
        if entry is None:
            return {"exists": False}

        return {
            "exists": True,
            "expires_at": entry.expires_at.isoformat(),
            "is_expired": entry.is_expired(self._clock()),
        }

    def status_all(self) -> Dict[str, Dict[str, Any]]:
        """Describe every cached identity, keyed by identity key."""
        now = self._clock()
        result = {}
        for key, entry in self._entries.items():
            user_id, _, server_id = key.partition(":")
            result[key] = {
                "user_id": user_id,
                "server_id": server_id,
                "expires_at": entry.expires_at.isoformat(),
                "is_expired": entry.is_expired(now),
            }
        return result
