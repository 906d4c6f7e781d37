"""
Bearer credential issuance and verification

Tokens are HS256 JWTs carrying ``sub`` (user id), ``role`` and ``email``.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from ...core.clock import utc_now
from ...core.errors import UnauthenticatedError
from ...models.user import Identity, Role, User


class TokenIssuer:
    """Signs access tokens for authenticated users"""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_seconds: int = 7 * 24 * 3600):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds

    def issue(self, user: User) -> str:
        now = utc_now()
        claims: Dict[str, Any] = {
            "sub": user.id,
            "role": user.role.value,
            "email": user.email,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.ttl_seconds)).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)


class IdentityVerifier:
    """Validates a bearer credential and yields the caller identity"""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.logger = logging.getLogger(__name__)
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> Identity:
        """
        Decode and validate ``token``

        Raises:
            UnauthenticatedError: missing, malformed, tampered or expired token
        """
        if not token:
            raise UnauthenticatedError("Missing token")

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            self.logger.debug(f"Rejected token: {e}")
            raise UnauthenticatedError("Invalid or expired token")

        user_id = payload.get("sub")
        if not user_id:
            raise UnauthenticatedError("Invalid token payload")

        return Identity(
            user_id=str(user_id),
            role=Role.parse(payload.get("role")),
            email=payload.get("email")
        )

    def try_verify(self, token: Optional[str]) -> Optional[Identity]:
        """Like verify() but yields None instead of raising, for optional auth"""
        try:
            return self.verify(token)
        except UnauthenticatedError:
            return None
