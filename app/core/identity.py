"""Resolve caller identity from tokens issued by the external identity provider.

Sign-up, sign-in and password flows live with the provider; this service only
verifies the access token it hands out and reads the subject claim.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Protocol

import jwt

from app.core.config import settings


class InvalidIdentityError(ValueError):
    """Raised when a presented token cannot be verified."""


class IdentityProvider(Protocol):
    def resolve(self, token: Optional[str]) -> Optional[str]: ...


class JWTIdentityProvider:
    def __init__(
        self,
        secret: Optional[str],
        *,
        audience: Optional[str] = None,
        algorithm: str = "HS256",
    ):
        self.secret = secret
        self.audience = audience
        self.algorithm = algorithm

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify and decode a JWT token"""
        if not self.secret:
            raise InvalidIdentityError("Token verification is not configured")
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.PyJWTError as e:
            raise InvalidIdentityError(f"Invalid token: {e}")

    def resolve(self, token: Optional[str]) -> Optional[str]:
        """Return the token subject, or ``None`` for guests without a token."""
        if not token:
            return None
        claims = self.verify_token(token)
        sub = claims.get("sub")
        if not sub:
            raise InvalidIdentityError("Invalid token: missing subject")
        return str(sub)

    def issue_token(self, subject: str, lifetime_seconds: int = 3600) -> str:
        """Mint a token the way the provider does; used by tooling and tests."""
        if not self.secret:
            raise InvalidIdentityError("Token verification is not configured")
        now = int(time.time())
        payload: Dict[str, Any] = {"sub": subject, "iat": now, "exp": now + lifetime_seconds}
        if self.audience:
            payload["aud"] = self.audience
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


_provider: Optional[JWTIdentityProvider] = None


def get_identity_provider() -> IdentityProvider:
    global _provider
    if _provider is None:
        _provider = JWTIdentityProvider(
            settings.auth.jwt_secret,
            audience=settings.auth.audience,
            algorithm=settings.auth.algorithm,
        )
    return _provider
