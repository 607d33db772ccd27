"""
Storage key derivation.

Logical keys (URLs, cache names) are hashed to fixed-length storage keys so
they fit the key syntax of the backing stores and stay bounded in length.
"""

from __future__ import annotations

import hashlib
import re

from agricache.logging import get_logger

logger = get_logger(__name__)

# Hex characters of the digest kept in a storage key
STORAGE_KEY_LENGTH = 16

# Longest fallback key; leaves room for the partial-download suffix within
# the usual 255-byte file name limit
MAX_FALLBACK_KEY_LENGTH = 200

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def sanitize_key(key: str) -> str:
    """Replace every non-alphanumeric character with an underscore.

    The result is truncated to MAX_FALLBACK_KEY_LENGTH characters so it stays
    usable as a file name.
    """
    return _UNSAFE_CHARS.sub("_", key)[:MAX_FALLBACK_KEY_LENGTH]


def storage_key(key: str, algorithm: str = "sha256") -> str:
    """Map a logical key to its storage key.

    Pure: the same logical key always yields the same storage key. If the
    digest algorithm is unavailable the sanitized key is used instead.

    Args:
        key: Logical key.
        algorithm: hashlib algorithm name.

    Returns:
        First 16 hex characters of the digest, or the sanitized key.
    """
    try:
        digest = hashlib.new(algorithm, key.encode("utf-8"))
    except ValueError:
        logger.warning("Digest unavailable, using sanitized key", algorithm=algorithm)
        return sanitize_key(key)
    return digest.hexdigest()[:STORAGE_KEY_LENGTH]
