"""
Trust Ledger

Per-user reputation score. Every adjustment is a single clamped UPDATE so
concurrent credits and penalties on the same user never lose writes and the
score never leaves [0, 5].
"""

import logging
from typing import Iterable, Optional

from ...core.clock import utc_now, to_iso
from ...core.database import DatabaseManager
from ...models.user import TRUST_SCORE_MIN, TRUST_SCORE_MAX
from .user_repository import UserRepository


RESOLUTION_CREDIT = 0.1
FALSE_ALERT_PENALTY = 0.5
SUSPENSION_THRESHOLD = 1.5
TRUST_CAP = TRUST_SCORE_MAX
TRUST_FLOOR = TRUST_SCORE_MIN


class TrustLedger:
    """Applies trust credits and penalties"""

    def __init__(self, db: DatabaseManager, users: UserRepository):
        self.logger = logging.getLogger(__name__)
        self.db = db
        self.users = users

    def increment(self, user_ids: Iterable[str], delta: float = RESOLUTION_CREDIT,
                  cap: float = TRUST_CAP) -> int:
        """
        Credit every user in ``user_ids`` by ``delta``, never above ``cap``

        Returns:
            Number of users updated
        """
        ids = list(dict.fromkeys(str(u) for u in user_ids))
        if not ids:
            return 0

        cap = min(cap, TRUST_CAP)
        placeholders = ','.join('?' for _ in ids)
        updated = self.db.execute_update(
            f"""
            UPDATE users
            SET trust_score = MIN(?, MAX(?, trust_score + ?)), updated_at = ?
            WHERE id IN ({placeholders})
            """,
            (cap, TRUST_FLOOR, abs(delta), to_iso(utc_now()), *ids)
        )
        self.logger.debug(f"Credited {updated} users by {delta}")
        return updated

    def decrement(self, user_id: str, delta: float = FALSE_ALERT_PENALTY,
                  floor: float = TRUST_FLOOR) -> Optional[float]:
        """
        Debit ``user_id`` by ``delta``, never below ``floor``

        Returns:
            The score after the update, or None when the user does not exist
        """
        floor = max(floor, TRUST_FLOOR)
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE users
                SET trust_score = MIN(?, MAX(?, trust_score - ?)), updated_at = ?
                WHERE id = ?
                """,
                (TRUST_CAP, floor, abs(delta), to_iso(utc_now()), str(user_id))
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT trust_score FROM users WHERE id = ?", (str(user_id),)
            ).fetchone()
        return float(row[0])

    def apply_false_alert_penalty(self, user_id: str) -> Optional[float]:
        """
        Penalize the creator of a confirmed false alert and suspend them once
        their score falls to the suspension threshold

        Returns:
            The re-read trust score, or None when the user does not exist
        """
        score = self.decrement(user_id, FALSE_ALERT_PENALTY)
        if score is None:
            self.logger.warning(f"False alert penalty skipped, user {user_id} not found")
            return None

        if score <= SUSPENSION_THRESHOLD:
            self.users.set_suspended(user_id)
            self.logger.warning(f"User {user_id} suspended at trust score {score:.2f}")

        return score

    def get_score(self, user_id: str) -> Optional[float]:
        rows = self.db.execute_query("SELECT trust_score FROM users WHERE id = ?", (str(user_id),))
        return float(rows[0][0]) if rows else None
