"""
Signed unsubscribe tokens for campaign emails.

A token is base64url("<account_id>:<email>:<sig>") where sig is the
base64url HMAC-SHA256 of "<account_id>:<email>" under the unsubscribe secret.
Emails are normalised (trimmed, lower-cased) before signing.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac

from reviewreply.config import settings

__all__ = [
    "create_unsubscribe_token",
    "verify_unsubscribe_token",
]


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _sign(payload: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256)
    return _b64url_encode(digest.digest())


def create_unsubscribe_token(account_id: str, email: str, secret: str | None = None) -> str:
    secret = secret or settings.unsubscribe_secret()
    payload = f"{account_id}:{_normalize_email(email)}"
    return _b64url_encode(f"{payload}:{_sign(payload, secret)}".encode())


def verify_unsubscribe_token(token: str | None, secret: str | None = None) -> tuple[str, str] | None:
    """Return (account_id, email) for a valid token, else None."""
    if not token or not isinstance(token, str):
        return None
    secret = secret or settings.unsubscribe_secret()

    try:
        decoded = _b64url_decode(token).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    payload, _, sig = decoded.rpartition(":")
    account_id, _, email = payload.partition(":")
    if not account_id or not email or not sig:
        return None

    if not hmac.compare_digest(sig.encode("utf-8"), _sign(payload, secret).encode("utf-8")):
        return None
    return account_id, email
