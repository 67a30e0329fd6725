"""Secret codec — at-rest encryption for client tokens and upstream API keys.

AES-256-GCM with a fresh 12-byte random nonce per call. Stored blobs are
``nonce || ciphertext || tag``. The key is supplied as
KEY_ENCRYPTION_SECRET in hex (optionally 0x-prefixed), base64 or base64url.
"""

import base64
import binascii
import hashlib
import hmac
import os
import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mcp_nexus.errors import ConfigError, DecryptionError

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16
MASK_CHAR = "*"

_HEX_KEY_RE = re.compile(r"^(?:0x)?[0-9a-fA-F]{64}$")
_B64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_HINT = "Generate one with `openssl rand -base64 32`."


def decode_symmetric_key(material: str) -> bytes:
    """Decode KEY_ENCRYPTION_SECRET into a 32-byte AES key.

    Raises:
        ConfigError: empty, undecodable, or not exactly 32 bytes.
    """
    raw = (material or "").strip()
    if not raw:
        raise ConfigError("Invalid KEY_ENCRYPTION_SECRET: value is empty.")

    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        raw = raw[1:-1].strip()
    normalized = "".join(raw.split())

    if _HEX_KEY_RE.match(normalized):
        hex_part = normalized[2:] if normalized.startswith("0x") else normalized
        return bytes.fromhex(hex_part)

    # base64url -> standard alphabet, then restore padding
    b64 = normalized.replace("-", "+").replace("_", "/")
    mod = len(b64.rstrip("=")) % 4
    if mod == 1 or not b64 or not _B64_RE.match(b64):
        raise ConfigError(f"Invalid KEY_ENCRYPTION_SECRET: not valid base64/base64url. {_HINT}")
    b64 = b64.rstrip("=")
    if mod:
        b64 += "=" * (4 - mod)

    try:
        key = base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError):
        raise ConfigError(f"Invalid KEY_ENCRYPTION_SECRET: not valid base64/base64url. {_HINT}")

    if len(key) != KEY_BYTES:
        raise ConfigError(
            f"Invalid KEY_ENCRYPTION_SECRET: must decode to 32 bytes (got {len(key)}). {_HINT}"
        )
    return key


def encrypt(plaintext: str, key: bytes) -> bytes:
    nonce = os.urandom(NONCE_BYTES)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return nonce + ciphertext


def decrypt(blob: bytes, key: bytes) -> str:
    """Reverse :func:`encrypt`.

    Raises:
        DecryptionError: blob too short, tag mismatch, or wrong key.
    """
    if blob is None or len(blob) < NONCE_BYTES + TAG_BYTES:
        raise DecryptionError("Encrypted value is truncated or missing")

    nonce, ciphertext = bytes(blob[:NONCE_BYTES]), bytes(blob[NONCE_BYTES:])
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise DecryptionError(
            "Failed to decrypt value (tampered data or KEY_ENCRYPTION_SECRET changed)"
        )
    return plaintext.decode("utf-8")


def mask(secret: str) -> str:
    """Display form of a secret: first 4 and last 4 chars only."""
    if len(secret) <= 12:
        return MASK_CHAR * len(secret)
    return f"{secret[:4]}{MASK_CHAR * (len(secret) - 8)}{secret[-4:]}"


def constant_time_equal(a: str | bytes, b: str | bytes) -> bool:
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    return hmac.compare_digest(a, b)


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def generate_token(n_bytes: int = 32) -> str:
    """Random lowercase hex string of ``2 * n_bytes`` characters."""
    return secrets.token_hex(n_bytes)
