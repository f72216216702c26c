"""Webhook signature verification for GitHub webhook payloads."""

import hashlib
import hmac


def sign_payload(payload: bytes, secret: str) -> str:
    """Return the ``X-Hub-Signature-256`` header value GitHub would send."""
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_github_signature(payload: bytes, signature: str, secret: str) -> bool:
    """Verify the X-Hub-Signature-256 header from GitHub.

    Returns True if the signature matches the expected HMAC-SHA256 digest.
    """
    if not signature.startswith("sha256="):
        return False
    # Constant-time comparison to prevent timing attacks
    return hmac.compare_digest(sign_payload(payload, secret), signature)
