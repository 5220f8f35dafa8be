"""Signed URL utilities for locally served artifacts."""

from __future__ import annotations

import os

from itsdangerous import BadSignature, URLSafeTimedSerializer

DEFAULT_EXPIRY = int(os.environ.get("SIGNED_URL_EXPIRY", 60 * 60 * 24 * 7))


def _serializer() -> URLSafeTimedSerializer:
    secret = os.environ.get("SIGNING_SECRET", "change-me")
    return URLSafeTimedSerializer(secret_key=secret, salt="artifact")


def sign_path(path: str) -> str:
    token = _serializer().dumps(path)
    return f"{path}?token={token}"


def verify_token(token: str, path: str, max_age: int = DEFAULT_EXPIRY) -> bool:
    """True when ``token`` was issued for ``path`` and has not expired."""
    try:
        signed = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return False
    return signed == path
