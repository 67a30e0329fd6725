"""Tests for mcp_nexus/crypto/codec.py — key decoding, AES-GCM, masking."""

import base64
import os

import pytest

from mcp_nexus.crypto.codec import (
    NONCE_BYTES,
    constant_time_equal,
    decode_symmetric_key,
    decrypt,
    encrypt,
    generate_token,
    mask,
    sha256_hex,
)
from mcp_nexus.errors import ConfigError, DecryptionError


@pytest.fixture
def raw_key() -> bytes:
    return os.urandom(32)


def _encodings(raw: bytes) -> list[str]:
    b64 = base64.b64encode(raw).decode()
    b64url = base64.urlsafe_b64encode(raw).decode()
    return [
        raw.hex(),
        raw.hex().upper(),
        "0x" + raw.hex(),
        b64,
        b64.rstrip("="),
        b64url,
        b64url.rstrip("="),
        f'"{b64}"',
        f"'{raw.hex()}'",
        f"  \n\t{b64}\n  ",
        b64[:20] + " \n" + b64[20:],
    ]


class TestDecodeSymmetricKey:

    def test_all_encodings_yield_same_key(self, raw_key):
        for material in _encodings(raw_key):
            assert decode_symmetric_key(material) == raw_key, material

    def test_roundtrip_through_every_encoding(self, raw_key):
        for material in _encodings(raw_key):
            key = decode_symmetric_key(material)
            assert decrypt(encrypt("test-token-plaintext", key), key) == "test-token-plaintext"

    @pytest.mark.parametrize("material", ["", "   ", "\n\t", '""', "''"])
    def test_empty_rejected(self, material):
        with pytest.raises(ConfigError, match="Invalid KEY_ENCRYPTION_SECRET"):
            decode_symmetric_key(material)

    @pytest.mark.parametrize("material", ["not-base64!!!!", "abc$def", "a", "abcde"])
    def test_undecodable_rejected(self, material):
        with pytest.raises(ConfigError, match="Invalid KEY_ENCRYPTION_SECRET"):
            decode_symmetric_key(material)

    @pytest.mark.parametrize("length", [16, 31, 33, 64])
    def test_wrong_length_rejected(self, length):
        material = base64.b64encode(os.urandom(length)).decode()
        with pytest.raises(ConfigError, match="must decode to 32 bytes"):
            decode_symmetric_key(material)

    def test_short_hex_rejected(self):
        # 62 hex chars is not a hex key; as base64 it decodes to the wrong length
        with pytest.raises(ConfigError):
            decode_symmetric_key("ab" * 31)

    def test_error_message_is_actionable(self):
        with pytest.raises(ConfigError) as exc_info:
            decode_symmetric_key(base64.b64encode(b"x" * 16).decode())
        assert "openssl rand -base64 32" in exc_info.value.message
        assert "got 16" in exc_info.value.message


class TestEncryptDecrypt:

    @pytest.mark.parametrize("plaintext", [
        "",
        "mcp_abc123def456.0123456789abcdef0123456789abcdef0123456789abcdef",
        "héllo wörld — 日本語 🔑",
        "x" * 10_000,
    ])
    def test_roundtrip(self, raw_key, plaintext):
        assert decrypt(encrypt(plaintext, raw_key), raw_key) == plaintext

    def test_blob_layout(self, raw_key):
        blob = encrypt("abc", raw_key)
        # nonce + ciphertext (same length as plaintext) + 16-byte tag
        assert len(blob) == NONCE_BYTES + 3 + 16

    def test_fresh_nonce_per_call(self, raw_key):
        nonces = {encrypt("same", raw_key)[:NONCE_BYTES] for _ in range(50)}
        assert len(nonces) == 50

    def test_wrong_key_fails(self, raw_key):
        blob = encrypt("secret", raw_key)
        with pytest.raises(DecryptionError):
            decrypt(blob, os.urandom(32))

    def test_tampered_ciphertext_fails(self, raw_key):
        blob = bytearray(encrypt("secret", raw_key))
        blob[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            decrypt(bytes(blob), raw_key)

    def test_truncated_blob_fails(self, raw_key):
        with pytest.raises(DecryptionError):
            decrypt(b"\x00" * (NONCE_BYTES - 1), raw_key)

    def test_empty_blob_fails(self, raw_key):
        with pytest.raises(DecryptionError):
            decrypt(b"", raw_key)


class TestMask:

    def test_short_secret_fully_masked(self):
        assert mask("abcdefgh") == "********"

    def test_twelve_chars_fully_masked(self):
        assert mask("abcdefghijkl") == "*" * 12

    def test_long_secret_shows_edges(self):
        assert mask("abcdefghijklmnop") == "abcd" + "*" * 8 + "mnop"

    def test_length_preserved(self):
        secret = "tvly-" + "a" * 30
        assert len(mask(secret)) == len(secret)

    def test_empty(self):
        assert mask("") == ""


class TestHelpers:

    def test_constant_time_equal(self):
        assert constant_time_equal("abc", "abc") is True
        assert constant_time_equal("abc", "abd") is False
        assert constant_time_equal("abc", "abcd") is False
        assert constant_time_equal(b"abc", "abc") is True

    def test_sha256_hex(self):
        assert sha256_hex("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_generate_token(self):
        token = generate_token(24)
        assert len(token) == 48
        assert all(c in "0123456789abcdef" for c in token)
        assert generate_token(24) != token
