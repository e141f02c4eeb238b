"""
Test Token Cache
================

Tests for the per-identity access token cache.
"""

from datetime import timedelta

import pytest

from models import CachedCredential, make_identity_key

pytestmark = [pytest.mark.unit]


def credential(clock, seconds, token="access-1"):
    return CachedCredential(access_token=token, expires_at=clock() + timedelta(seconds=seconds))


class TestTokenCache:
    """Test cases for TokenCache."""

    def test_get_valid_returns_unexpired_entry(self, token_cache, clock):
        token_cache.put("u:s", credential(clock, 60))

        assert token_cache.get_valid("u:s").access_token == "access-1"

    def test_entry_expires_exactly_at_expiry(self, token_cache, clock):
        token_cache.put("u:s", credential(clock, 60))

        clock.advance(59)
        assert token_cache.get_valid("u:s") is not None

        clock.advance(1)
        assert token_cache.get_valid("u:s") is None
        # Expired entries are still visible to get()
        assert token_cache.get("u:s") is not None

    def test_missing_entry(self, token_cache):
        assert token_cache.get_valid("nobody:none") is None
        assert "nobody:none" not in token_cache

    def test_identities_are_isolated(self, token_cache, clock):
        token_cache.put(make_identity_key("u1", "s1"), credential(clock, 60, "token-a"))
        token_cache.put(make_identity_key("u1", "s2"), credential(clock, 60, "token-b"))

        assert token_cache.get_valid("u1:s1").access_token == "token-a"
        assert token_cache.get_valid("u1:s2").access_token == "token-b"

        token_cache.invalidate("u1:s1")
        assert token_cache.get_valid("u1:s2").access_token == "token-b"

    def test_put_overwrites(self, token_cache, clock):
        token_cache.put("u:s", credential(clock, 60, "old"))
        token_cache.put("u:s", credential(clock, 60, "new"))

        assert token_cache.get("u:s").access_token == "new"
        assert len(token_cache) == 1

    def test_invalidate(self, token_cache, clock):
        token_cache.put("u:s", credential(clock, 60))

        assert token_cache.invalidate("u:s") is True
        assert token_cache.invalidate("u:s") is False
        assert token_cache.get("u:s") is None

    def test_status_missing(self, token_cache):
        assert token_cache.status("u:s") == {"exists": False}

    def test_status_reports_expiry(self, token_cache, clock):
        cred = credential(clock, 60)
        token_cache.put("u:s", cred)

        status = token_cache.status("u:s")
        assert status == {
            "exists": True,
            "expires_at": cred.expires_at.isoformat(),
            "is_expired": False,
        }

        clock.advance(120)
        assert token_cache.status("u:s")["is_expired"] is True

    def test_status_all(self, token_cache, clock):
        token_cache.put("u1:s1", credential(clock, 60))
        token_cache.put("u2:s2", credential(clock, -1))

        statuses = token_cache.status_all()

        assert set(statuses) == {"u1:s1", "u2:s2"}
        assert statuses["u1:s1"]["user_id"] == "u1"
        assert statuses["u1:s1"]["server_id"] == "s1"
        assert statuses["u1:s1"]["is_expired"] is False
        assert statuses["u2:s2"]["is_expired"] is True
