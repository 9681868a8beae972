"""
Session tokens — HS256 JWTs signed with JWT_SECRET.

Claims:
- sub / userId: persisted user id (userId kept for existing clients)
- iat / exp: issued / expiry

Verification failures of any kind (bad signature, expired, missing claims,
no secret configured) raise InvalidTokenError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import jwt

from medichat.errors import InvalidTokenError

logger = logging.getLogger(__name__)


class TokenService:
    def __init__(self, secret: str, algorithm: str = "HS256", ttl_minutes: int = 1440):
        if not secret:
            logger.warning("JWT_SECRET not set — session tokens cannot be issued or verified")
        self._secret = secret
        self._algorithm = algorithm
        self.ttl = timedelta(minutes=ttl_minutes)

    def issue(self, user_id: str) -> str:
        if not self._secret:
            raise RuntimeError("JWT_SECRET is required to issue session tokens")

        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "userId": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str | None) -> str:
        """Return the user id embedded in a valid token."""
        if not token or not self._secret:
            raise InvalidTokenError()

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidTokenError(detail="expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(detail=str(e)) from e

        user_id = payload.get("sub") or payload.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise InvalidTokenError(detail="missing subject")
        return user_id
