"""
Sealed blob codec: JSON value ⇄ compressed, encrypted bytes.

Blob layout:
    bytes[0:12]   nonce (fresh per seal)
    bytes[12:]    AES-256-GCM ciphertext + 16-byte tag of
                  gzip(utf8(canonical_json(value)))

The AES key is the SHA-256 digest of the caller's key string, so any string
length is accepted and the same string always yields the same key.
"""

import gzip
import hashlib
import json
import os
import zlib
from typing import Any, Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import DecryptionFailed

NONCE_LENGTH = 12
TAG_LENGTH = 16
MIN_BLOB_LENGTH = NONCE_LENGTH + TAG_LENGTH


def derive_key(key_string: str) -> bytes:
    """Derive the 32-byte AES-256 key for a caller-supplied key string."""
    if not isinstance(key_string, str):
        raise TypeError("key_string must be a str")
    return hashlib.sha256(key_string.encode("utf-8")).digest()


def canonical_json(value: Any) -> str:
    """Serialize to compact JSON with sorted keys."""
    return json.dumps(
        value,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


class SealedBlobCodec:
    """
    Compress-then-encrypt codec for archive partitions.

    Stateless apart from the nonce source, which tests may replace.
    """

    def __init__(
        self,
        compress_level: int = 6,
        nonce_factory: Callable[[int], bytes] = os.urandom,
    ):
        """
        Initialize the codec.

        Args:
            compress_level: gzip compression level (1-9)
            nonce_factory: Source of random nonce bytes
        """
        self.compress_level = compress_level
        self._nonce_factory = nonce_factory

    def seal(self, value: Any, key_string: str) -> bytes:
        """
        Serialize, compress and encrypt a JSON-compatible value.

        Raises:
            TypeError/ValueError if the value is not JSON-serializable
        """
        key = derive_key(key_string)
        text = canonical_json(value)
        compressed = gzip.compress(
            text.encode("utf-8"), compresslevel=self.compress_level, mtime=0
        )

        nonce = self._nonce_factory(NONCE_LENGTH)
        ciphertext = AESGCM(key).encrypt(nonce, compressed, None)
        return nonce + ciphertext

    def open(self, blob: bytes, key_string: str) -> Any:
        """
        Decrypt, decompress and parse a sealed blob.

        Raises:
            DecryptionFailed for any unreadable blob
        """
        key = derive_key(key_string)
        blob = bytes(blob)

        if len(blob) < MIN_BLOB_LENGTH:
            raise DecryptionFailed(
                f"Blob too short ({len(blob)} bytes, need at least {MIN_BLOB_LENGTH})",
                reason="truncated",
            )

        nonce = blob[:NONCE_LENGTH]
        ciphertext = blob[NONCE_LENGTH:]

        try:
            compressed = AESGCM(key).decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise DecryptionFailed(
                "Authentication failed (wrong key or corrupted blob)",
                reason="authentication",
            ) from None

        try:
            text = gzip.decompress(compressed)
        except (OSError, EOFError, zlib.error) as e:
            raise DecryptionFailed(f"Decompression failed: {e}", reason="decompression") from e

        try:
            return json.loads(text.decode("utf-8"))
        except ValueError as e:
            raise DecryptionFailed(f"Payload parse failed: {e}", reason="parse") from e
