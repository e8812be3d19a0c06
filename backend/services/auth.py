"""
Authentication - JWT bearer tokens for chat and session endpoints.

Sign-in happens elsewhere; this service only verifies HS256 tokens whose
`sub` claim is the owner id used to scope every session read and write.

Features:
- HS256 tokens verified with PyJWT (exp enforced when present)
- Random per-process secret when JWT_SECRET is unset (dev only)
- FastAPI dependency `verify_user` returning {"user_id": <sub>}
"""

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from errors import UnauthorizedError

logger = logging.getLogger(__name__)

# JWT config
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 8

# Optional Bearer token extractor (doesn't auto-raise on missing)
_bearer_scheme = HTTPBearer(auto_error=False)


class TokenVerifier:
    """Issues and verifies owner tokens with one shared secret."""

    def __init__(self, secret: str = ""):
        if not secret:
            secret = secrets.token_hex(32)
            logger.warning("JWT_SECRET not set, using a random secret (tokens will not survive a restart)")
        self._jwt_secret = secret

    def create_token(self, owner_id: str, expires_in_hours: float = JWT_EXPIRY_HOURS, **claims) -> dict:
        """Create a JWT token. Returns {token, expires_at}."""
        expires_at = time.time() + (expires_in_hours * 3600)
        payload = {"sub": str(owner_id), "iat": int(time.time()), "exp": int(expires_at), **claims}
        token = jwt.encode(payload, self._jwt_secret, algorithm=JWT_ALGORITHM)
        return {
            "token": token,
            "expires_at": datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat(),
        }

    def verify_token(self, token: str) -> Optional[dict]:
        """
        Verify a JWT token. Returns decoded payload or None.

        A token without a non-empty `sub` claim is rejected.
        """
        try:
            payload = jwt.decode(token, self._jwt_secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.debug("Rejected expired token")
            return None
        except jwt.InvalidTokenError:
            return None
        if not str(payload.get("sub") or "").strip():
            return None
        return payload


# =============================================================================
# FastAPI Dependencies
# =============================================================================


async def verify_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> dict:
    """
    Auth dependency for any signed-in user.

    Returns:
        Dict with user_id (the token's sub claim)

    Raises:
        UnauthorizedError (401) if the token is missing or invalid
    """
    verifier: TokenVerifier = request.app.state.services.auth

    if credentials and credentials.credentials:
        payload = verifier.verify_token(credentials.credentials)
        if payload:
            return {"user_id": str(payload["sub"])}
        raise UnauthorizedError(details="Invalid or expired token", invalid_token=True)

    raise UnauthorizedError(details="Authentication required")
