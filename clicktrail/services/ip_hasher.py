"""Salted one-way hashing of client IP addresses.

Raw IPs are transient: the recorder hashes them before anything is
persisted, and the digest is the visitor identity used for dedup and
distinct counts.
"""

import hashlib

from clicktrail.core.config import get_settings

UNKNOWN_IP = "unknown"


class IPPrivacyHasher:
    """Hash IP addresses with a process-wide salt.

    Usage:
        hasher = IPPrivacyHasher("s3cret")
        digest = hasher.hash("203.0.113.7")
    """

    def __init__(self, salt: str):
        self._salt = salt

    def hash(self, ip_address: str | None) -> str:
        """Return the hex SHA-256 digest of ``ip + salt``.

        A missing address hashes the literal ``unknown``, so all clients
        without an IP collapse into one visitor.
        """
        value = (ip_address or UNKNOWN_IP) + self._salt
        return hashlib.sha256(value.encode("utf-8")).hexdigest()


# Global hasher instance
_ip_hasher: IPPrivacyHasher | None = None


def get_ip_hasher() -> IPPrivacyHasher:
    """Get the global IP hasher, salted from settings."""
    global _ip_hasher
    if _ip_hasher is None:
        _ip_hasher = IPPrivacyHasher(get_settings().ip_hash_salt)
    return _ip_hasher
