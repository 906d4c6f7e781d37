"""
Append-only audit trail of responder activity
"""

import logging
import sqlite3
from typing import List, Optional

from ...core.clock import to_iso, from_iso
from ...core.database import DatabaseManager
from ...models.incident import ResponseAction, ResponseLogEntry


class ResponseLogRepository:
    """Writes and reads response log entries; entries are never updated"""

    def __init__(self, db: DatabaseManager):
        self.logger = logging.getLogger(__name__)
        self.db = db

    def append(self, entry: ResponseLogEntry, conn: Optional[sqlite3.Connection] = None) -> ResponseLogEntry:
        """Insert ``entry``, inside the caller's transaction when ``conn`` is given"""
        if conn is None:
            with self.db.transaction() as own:
                return self.append(entry, own)

        cursor = conn.execute(
            """
            INSERT INTO response_logs (incident_id, responder_id, action, note, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (entry.incident_id, entry.responder_id, entry.action.value,
             entry.note, to_iso(entry.created_at))
        )
        entry.id = cursor.lastrowid

        self.logger.debug(f"Logged {entry.action.value} by {entry.responder_id} on incident {entry.incident_id}")
        return entry

    def list_for_incident(self, incident_id: str) -> List[ResponseLogEntry]:
        rows = self.db.execute_query(
            "SELECT * FROM response_logs WHERE incident_id = ? ORDER BY id",
            (str(incident_id),)
        )
        return [
            ResponseLogEntry(
                id=row['id'],
                incident_id=row['incident_id'],
                responder_id=row['responder_id'],
                action=ResponseAction(row['action']),
                note=row['note'] or "",
                created_at=from_iso(row['created_at'])
            )
            for row in rows
        ]
