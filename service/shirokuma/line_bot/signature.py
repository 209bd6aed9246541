import base64
import hashlib
import hmac
from typing import Optional


def compute_signature(body: bytes, channel_secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw request body."""
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_signature(body: bytes, signature: Optional[str], channel_secret: str) -> bool:
    """Check the X-Line-Signature header against the raw body."""
    if not signature or not channel_secret:
        return False
    return hmac.compare_digest(compute_signature(body, channel_secret), signature)
