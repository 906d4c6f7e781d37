"""
Account registration and login
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import bcrypt

from ...core.errors import ForbiddenError, UnauthenticatedError, ValidationError
from ...models.user import Role, User
from .identity import TokenIssuer
from .user_repository import UserRepository


class AuthService:
    """Registers users and exchanges credentials for access tokens"""

    def __init__(self, users: UserRepository, issuer: TokenIssuer,
                 admin_emails: Optional[List[str]] = None, bcrypt_rounds: int = 10):
        self.logger = logging.getLogger(__name__)
        self.users = users
        self.issuer = issuer
        self.admin_emails = {e.strip().lower() for e in (admin_emails or []) if e}
        self.bcrypt_rounds = bcrypt_rounds

    def _hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    @staticmethod
    def _check_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
        except ValueError:
            return False

    def _session(self, user: User) -> Dict[str, Any]:
        return {'token': self.issuer.issue(user), 'user': user.public_profile()}

    async def register(self, name: str, email: str, password: str,
                       skills: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Create an account and return ``{token, user}``

        Raises:
            ValidationError: name, email or password missing
            ConflictError: email already registered
        """
        name = (name or '').strip()
        email = UserRepository.normalize_email(email)
        if not name or not email or not password:
            raise ValidationError("name, email and password are required")

        password_hash = await asyncio.get_running_loop().run_in_executor(
            None, self._hash_password, password
        )
        user = User(
            name=name,
            email=email,
            password_hash=password_hash,
            skills=[str(s).strip() for s in (skills or []) if str(s).strip()],
            role=Role.ADMIN if email in self.admin_emails else Role.NORMAL
        )
        # No row is written unless a token could be issued
        session = self._session(user)
        self.users.create(user)
        return session

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Verify credentials and return ``{token, user}``

        Raises:
            ValidationError: email or password missing
            UnauthenticatedError: unknown email or wrong password
            ForbiddenError: account suspended
        """
        if not email or not password:
            raise ValidationError("email and password are required")

        user = self.users.get_by_email(email)
        if user is None:
            raise UnauthenticatedError("Invalid credentials")

        valid = await asyncio.get_running_loop().run_in_executor(
            None, self._check_password, password, user.password_hash
        )
        if not valid:
            raise UnauthenticatedError("Invalid credentials")

        if user.suspended:
            self.logger.info(f"Login refused for suspended user {user.id}")
            raise ForbiddenError("Account suspended")

        return self._session(user)
