"""
Field-level encryption and deterministic search indexes.

Blob layout: base64(nonce[12] || tag[16] || ciphertext), AES-256-GCM over the
JSON-encoded record. Hashes are HMAC-SHA256, unpadded urlsafe base64.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
from datetime import date, datetime
from functools import lru_cache
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from backend.booking.core.config import MASTER_KEY_BYTES, MIN_HASH_SECRET_BYTES, settings
from backend.booking.core.errors import CryptoError

_NONCE_LEN = 12
_TAG_LEN = 16


class FieldCipher:
    """Encrypts PII records and derives equality-searchable tokens."""

    def __init__(self, master_key: bytes, hash_secret: bytes) -> None:
        if not master_key or len(master_key) != MASTER_KEY_BYTES:
            raise CryptoError("master key must be 32 bytes")
        if not hash_secret or len(hash_secret) < MIN_HASH_SECRET_BYTES:
            raise CryptoError("hash secret must be at least 32 bytes")
        self._aead = AESGCM(master_key)
        self._hash_secret = hash_secret

    def encrypt(self, record: dict[str, Any]) -> str:
        nonce = os.urandom(_NONCE_LEN)
        plaintext = json.dumps(record, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        # AESGCM appends the tag to the ciphertext; store it up front.
        sealed = self._aead.encrypt(nonce, plaintext, associated_data=None)
        ciphertext, tag = sealed[:-_TAG_LEN], sealed[-_TAG_LEN:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> dict[str, Any]:
        try:
            payload = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
            raise CryptoError("Malformed encrypted blob") from exc

        if len(payload) < _NONCE_LEN + _TAG_LEN:
            raise CryptoError("Malformed encrypted blob")

        nonce = payload[:_NONCE_LEN]
        tag = payload[_NONCE_LEN:_NONCE_LEN + _TAG_LEN]
        ciphertext = payload[_NONCE_LEN + _TAG_LEN:]

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, associated_data=None)
        except InvalidTag as exc:
            raise CryptoError("Unable to decrypt record") from exc

        return json.loads(plaintext.decode("utf-8"))

    def hash_value(self, value: str) -> str:
        digest = hmac.new(self._hash_secret, value.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def date_index(value: date | datetime | str) -> str:
    """Plaintext YYYY-MM-DD index for date-range admin queries."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date for index: {value!r}") from exc


@lru_cache
def get_cipher() -> FieldCipher:
    """Process-wide cipher built once from settings."""
    return FieldCipher(settings.master_key, settings.hash_secret)
