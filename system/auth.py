# system/auth.py
"""
Pulseboard Auth — v1.0.0

One shared edit password, sent back as `Authorization: Bearer <password>`.
No sessions, no users.
"""

from __future__ import annotations

import hmac
from typing import Optional

from core.errors import NotConfigured, Unauthorized


BEARER_PREFIX = "Bearer "


def bearer_matches(header: Optional[str], secret: Optional[str]) -> bool:
    if not header or not secret:
        return False
    return hmac.compare_digest(header.encode(), f"{BEARER_PREFIX}{secret}".encode())


def is_authorized(header: Optional[str], password: Optional[str]) -> bool:
    """Soft check for reads that only decide what to include."""
    return bearer_matches(header, password)


def require_editor(header: Optional[str], password: Optional[str]) -> None:
    """Gate for mutations."""
    if not password:
        raise NotConfigured("Server not configured")
    if not bearer_matches(header, password):
        raise Unauthorized("Unauthorized")


def verify_password(candidate: Optional[str], password: Optional[str]) -> None:
    if not password:
        raise NotConfigured("Server not configured for editing")
    if not candidate or not hmac.compare_digest(str(candidate).encode(), password.encode()):
        raise Unauthorized("Invalid password")


def require_cron(header: Optional[str], secret: Optional[str], production: bool) -> None:
    """The cron secret is only enforced in production, and only when set."""
    if production and secret and not bearer_matches(header, secret):
        raise Unauthorized("Unauthorized")


__all__ = [
    "bearer_matches",
    "is_authorized",
    "require_editor",
    "verify_password",
    "require_cron",
]
