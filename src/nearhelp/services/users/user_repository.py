"""
User persistence
"""

import json
import logging
import sqlite3
from typing import Dict, Iterable, List, Optional

from ...core.clock import utc_now, to_iso, from_iso
from ...core.database import DatabaseManager
from ...core.errors import ConflictError
from ...models.user import User, Role


class UserRepository:
    """Stores and loads user profiles"""

    def __init__(self, db: DatabaseManager):
        self.logger = logging.getLogger(__name__)
        self.db = db

    @staticmethod
    def normalize_email(email: str) -> str:
        return (email or '').strip().lower()

    def create(self, user: User) -> User:
        """
        Insert a new user

        Raises:
            ConflictError: email already registered (case-insensitive)
        """
        user.email = self.normalize_email(user.email)
        try:
            self.db.execute_update(
                """
                INSERT INTO users
                (id, name, email, password_hash, skills, trust_score, verified,
                 suspended, role, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user.id, user.name, user.email, user.password_hash,
                    json.dumps(user.skills), user.trust_score, user.verified,
                    user.suspended, user.role.value,
                    to_iso(user.created_at), to_iso(user.updated_at)
                )
            )
        except sqlite3.IntegrityError:
            raise ConflictError("Email already registered")

        self.logger.info(f"Registered user {user.id}")
        return user

    def get(self, user_id: str) -> Optional[User]:
        rows = self.db.execute_query("SELECT * FROM users WHERE id = ?", (str(user_id),))
        return self._row_to_user(rows[0]) if rows else None

    def get_by_email(self, email: str) -> Optional[User]:
        rows = self.db.execute_query(
            "SELECT * FROM users WHERE email = ?",
            (self.normalize_email(email),)
        )
        return self._row_to_user(rows[0]) if rows else None

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Batch lookup keyed by id; unknown ids are simply absent"""
        ids = list(dict.fromkeys(str(u) for u in user_ids if u is not None))
        if not ids:
            return {}

        placeholders = ','.join('?' for _ in ids)
        rows = self.db.execute_query(
            f"SELECT * FROM users WHERE id IN ({placeholders})",
            tuple(ids)
        )
        users = (self._row_to_user(row) for row in rows)
        return {user.id: user for user in users}

    def list_alert_recipients(self, exclude_user_id: str) -> List[User]:
        """Non-suspended users other than ``exclude_user_id``"""
        rows = self.db.execute_query(
            "SELECT * FROM users WHERE id != ? AND suspended = 0 ORDER BY created_at",
            (str(exclude_user_id),)
        )
        return [self._row_to_user(row) for row in rows]

    def set_suspended(self, user_id: str, suspended: bool = True) -> bool:
        updated = self.db.execute_update(
            "UPDATE users SET suspended = ?, updated_at = ? WHERE id = ?",
            (suspended, to_iso(utc_now()), str(user_id))
        )
        return updated > 0

    def count_suspended(self) -> int:
        return self.db.count("SELECT COUNT(*) FROM users WHERE suspended = 1")

    def count_verified(self) -> int:
        return self.db.count("SELECT COUNT(*) FROM users WHERE verified = 1")

    def _row_to_user(self, row) -> User:
        try:
            skills = json.loads(row['skills']) if row['skills'] else []
        except (json.JSONDecodeError, TypeError):
            skills = []

        return User(
            id=row['id'],
            name=row['name'],
            email=row['email'],
            password_hash=row['password_hash'],
            skills=skills,
            trust_score=float(row['trust_score']),
            verified=bool(row['verified']),
            suspended=bool(row['suspended']),
            role=Role.parse(row['role']),
            created_at=from_iso(row['created_at']),
            updated_at=from_iso(row['updated_at'])
        )
