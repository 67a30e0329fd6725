"""Tests for mcp_nexus/store/models.py — ClientToken / ProviderCredential."""

from datetime import datetime, timedelta, timezone

from mcp_nexus.store.models import (
    ClientToken,
    ProviderCredential,
    format_timestamp,
    parse_timestamp,
)


class TestTimestamps:

    def test_format_millisecond_z(self):
        ts = datetime(2026, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_timestamp(ts) == "2026-01-01T00:00:00.123Z"

    def test_format_none(self):
        assert format_timestamp(None) is None

    def test_parse_z_suffix(self):
        parsed = parse_timestamp("2026-01-01T00:00:00.000Z")
        assert parsed == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_parse_naive_assumed_utc(self):
        parsed = parse_timestamp("2026-01-01T12:00:00")
        assert parsed.tzinfo is not None
        assert parsed.hour == 12

    def test_parse_empty(self):
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None


class TestClientToken:

    def test_defaults(self):
        t = ClientToken(id="tok_1", token_prefix="mcp_abc", token_hash="h")
        assert t.allowed_tools is None
        assert t.rate_limit is None
        assert t.is_revoked is False
        assert t.is_expired() is False
        assert t.created_at.tzinfo is not None

    def test_expiry(self):
        now = datetime.now(timezone.utc)
        past = ClientToken(id="a", token_prefix="p", token_hash="h", expires_at=now - timedelta(seconds=1))
        future = ClientToken(id="b", token_prefix="q", token_hash="h", expires_at=now + timedelta(hours=1))
        assert past.is_expired(now) is True
        assert future.is_expired(now) is False

    def test_public_dict_hides_secrets(self):
        t = ClientToken(
            id="tok_1", token_prefix="mcp_abc123def456", token_hash="deadbeef",
            token_encrypted=b"\x00" * 40, description="CI",
            allowed_tools=["tavily_search"], rate_limit=120,
        )
        d = t.to_public_dict()
        assert set(d) == {
            "id", "tokenPrefix", "description", "allowedTools",
            "rateLimit", "revokedAt", "expiresAt", "createdAt",
        }
        assert d["allowedTools"] == ["tavily_search"]
        assert d["rateLimit"] == 120
        assert "deadbeef" not in str(d)

    def test_public_dict_null_defaults(self):
        d = ClientToken(id="tok_1", token_prefix="p", token_hash="h").to_public_dict()
        assert d["allowedTools"] is None
        assert d["rateLimit"] is None
        assert d["description"] is None
        assert d["revokedAt"] is None


class TestProviderCredential:

    def test_public_dict_uses_masked_key(self):
        c = ProviderCredential(
            id="key_1", provider_id="tavily", label="main",
            masked_key="tvly****abcd", encrypted_key=b"secret-blob",
        )
        d = c.to_public_dict()
        assert d["maskedKey"] == "tvly****abcd"
        assert "keyMasked" not in d
        assert "encryptedKey" not in d
        assert d["status"] == "active"
        assert d["lastUsedAt"] is None

    def test_is_active(self):
        c = ProviderCredential(id="k", provider_id="brave", label="", masked_key="", encrypted_key=b"")
        assert c.is_active
        c.status = "disabled"
        assert not c.is_active
