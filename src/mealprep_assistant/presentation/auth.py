"""Request identity for the chat and search routes.

Tokens are HS256 JWTs issued elsewhere; this module only verifies them.
The ``sub`` claim becomes the user id that scopes conversations and
recipes, and ``name`` / ``email`` are forwarded to the workflow webhook.

With ``AUTH_ENABLED=false`` every request runs as a fixed development user.
The external workflow calling ``POST /search`` on a user's behalf proves
itself with ``X-Internal-Key`` instead.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from fastapi import HTTPException, Request
from loguru import logger

from mealprep_assistant.config import Settings, get_settings

ALGORITHM = "HS256"
BEARER_PREFIX = "Bearer "

DEV_USER_ID = "dev-user"


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    name: str
    email: str

    def as_webhook_user(self) -> dict[str, str]:
        """The ``user`` block of a webhook envelope."""
        return {"id": self.user_id, "email": self.email, "name": self.name}


def _settings(request: Request) -> Settings:
    # The app factory may be given explicit settings; fall back to env.
    return getattr(request.app.state, "settings", None) or get_settings()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def create_token(settings: Settings, user_id: str, name: str = "", email: str = "") -> str:
    """Sign a token for *user_id*. Used by tests and local tooling only."""
    issued = datetime.now(UTC)
    claims = {
        "sub": user_id,
        "name": name,
        "email": email,
        "iat": issued,
        "exp": issued + timedelta(hours=settings.jwt_expiry_hours),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(settings: Settings, token: str) -> dict[str, Any]:
    """Verify signature and expiry.

    Raises:
        jwt.ExpiredSignatureError: The token is past ``exp``.
        jwt.InvalidTokenError: Any other verification failure.
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if not header.startswith(BEARER_PREFIX) or not header[len(BEARER_PREFIX) :].strip():
        raise _unauthorized("Missing or invalid Authorization header")
    return header[len(BEARER_PREFIX) :].strip()


def has_internal_key(request: Request) -> bool:
    """True when the request carries the configured ``X-Internal-Key``."""
    expected = _settings(request).internal_api_key
    presented = request.headers.get("X-Internal-Key")
    if not expected or not presented:
        return False
    return hmac.compare_digest(expected, presented)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------


async def get_current_user(request: Request) -> AuthenticatedUser:
    """Resolve the caller, or fail with 401 before any routing runs."""
    settings = _settings(request)
    if not settings.auth_enabled:
        return AuthenticatedUser(user_id=DEV_USER_ID, name="Dev User", email="dev@mealprep.local")

    token = _bearer_token(request)
    try:
        claims = decode_token(settings, token)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected bearer token | {}", type(exc).__name__)
        raise _unauthorized("Invalid token")

    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Token has no subject")

    return AuthenticatedUser(
        user_id=str(subject),
        name=claims.get("name") or "",
        email=claims.get("email") or "",
    )
