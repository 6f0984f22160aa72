"""AES-256-GCM encryption with HMAC blind indexes.

The server stores ciphertext plus one keyed hash per keyword. A query is
hashed the same way and matched by equality, so the index holder never sees
plaintext keywords.

Known limitation: ``query_index`` hashes the whole lowercased query string,
so only single-keyword queries can match.
"""

from __future__ import annotations

import hashlib
import hmac
import os
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mnemo.errors import DecryptionError
from mnemo.memory.keywords import extract_keywords

KEY_LENGTH = 32
IV_LENGTH = 12
AUTH_TAG_LENGTH = 16
HMAC_DERIVATION_LABEL = b"hmac-key-derivation"


@dataclass
class EncryptedPayload:
    """Hex ciphertext (with trailing tag), hex IV and blind-index tokens."""

    ciphertext: str
    iv: str
    blind_indexes: list[str] = field(default_factory=list)


def derive_hmac_key(key: bytes) -> bytes:
    return hmac.new(key, HMAC_DERIVATION_LABEL, hashlib.sha256).digest()


def blind_index(keyword: str, hmac_key: bytes) -> str:
    return hmac.new(hmac_key, keyword.lower().encode("utf-8"), hashlib.sha256).hexdigest()


def encrypt_with_index(content: str, key: bytes, max_keywords: int = 10) -> EncryptedPayload:
    """Encrypt ``content`` under a fresh IV and derive its blind indexes."""
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, content.encode("utf-8"), None)

    hmac_key = derive_hmac_key(key)
    tokens = [blind_index(k, hmac_key) for k in extract_keywords(content, max_keywords)]
    return EncryptedPayload(ciphertext=sealed.hex(), iv=iv.hex(), blind_indexes=tokens)


def decrypt(ciphertext: str, iv: str, key: bytes) -> str:
    """Verify the trailing tag and return the plaintext."""
    try:
        blob = bytes.fromhex(ciphertext)
        nonce = bytes.fromhex(iv)
    except (TypeError, ValueError) as e:
        raise DecryptionError(f"Malformed ciphertext or IV: {e}") from e
    if len(blob) < AUTH_TAG_LENGTH:
        raise DecryptionError("Ciphertext shorter than authentication tag")

    data, tag = blob[:-AUTH_TAG_LENGTH], blob[-AUTH_TAG_LENGTH:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, data + tag, None)
    except InvalidTag as e:
        raise DecryptionError("Authentication tag mismatch") from e
    except ValueError as e:
        raise DecryptionError(f"Cannot decrypt: {e}") from e
    return plaintext.decode("utf-8")


def query_index(query: str, key: bytes) -> str:
    """Blind-index token for a whole query string."""
    return blind_index(query, derive_hmac_key(key))
