"""Caller verification — UI session JWTs and webhook signatures."""

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException

SIGNATURE_PREFIX = "sha256="


def create_access_token(
    subject: str, secret: str, algorithm: str, expire_minutes: int
) -> str:
    """Create a JWT access token for a UI session."""
    payload = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expire_minutes),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str) -> str:
    """Decode a JWT token and return its subject. Raises on invalid/expired."""
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
        subject: str | None = payload.get("sub")
        if subject is None:
            raise HTTPException(status_code=401, detail="Invalid token payload")
        return subject
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def sign_body(body: bytes, secret: str) -> str:
    """``sha256=<hex>`` HMAC of a webhook body."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Constant-time check of a webhook signature. No secret means nothing verifies."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign_body(body, secret), signature.strip())
