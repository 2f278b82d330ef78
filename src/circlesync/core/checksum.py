"""Checksums and identifiers for synced items.

This module provides:
- compute_checksum: deterministic fingerprint of a serialized payload
- generate_single_id: fresh federation-wide identifier
"""

from __future__ import annotations

import hashlib
import json
import secrets
import string
from typing import Any

# Length of a single_id, shared with circle and member identifiers
SINGLE_ID_LENGTH = 31

_ALPHABET = string.ascii_letters + string.digits


def compute_checksum(payload: dict[str, Any] | None) -> str:
    """Compute the fingerprint of a serialized item.

    Keys are sorted so two instances serializing the same state in a
    different order agree on the checksum.

    Args:
        payload: Serialized item as returned by the host application.

    Returns:
        Hex-encoded SHA-256 hash string (64 characters).
    """
    canonical = json.dumps(
        payload or {}, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def generate_single_id(length: int = SINGLE_ID_LENGTH) -> str:
    """Generate a random alphanumeric identifier.

    Args:
        length: Number of characters.

    Returns:
        Cryptographically random identifier.
    """
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))
