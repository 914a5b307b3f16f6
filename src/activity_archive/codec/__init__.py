"""
Codec for sealing JSON values into encrypted, compressed blobs.
"""

from .sealed_blob import (
    MIN_BLOB_LENGTH,
    NONCE_LENGTH,
    SealedBlobCodec,
    canonical_json,
    derive_key,
)

__all__ = [
    "MIN_BLOB_LENGTH",
    "NONCE_LENGTH",
    "SealedBlobCodec",
    "canonical_json",
    "derive_key",
]
