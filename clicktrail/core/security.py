"""Password digests for protected links."""

import hashlib
import hmac


def hash_password(password: str) -> str:
    """Return the SHA-256 hex digest stored in ``ShortLink.password_hash``."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_password(password: str | None, password_hash: str) -> bool:
    """Check a supplied password against a stored digest in constant time."""
    if not password:
        return False
    return hmac.compare_digest(hash_password(password), password_hash)
