"""
Report persistence
"""

import logging
from typing import Optional

from ...core.clock import utc_now, to_iso, from_iso
from ...core.database import DatabaseManager
from ...models.report import Report


class ReportRepository:
    """Stores abuse reports"""

    def __init__(self, db: DatabaseManager):
        self.logger = logging.getLogger(__name__)
        self.db = db

    def create(self, report: Report) -> Report:
        self.db.execute_update(
            """
            INSERT INTO reports
            (id, incident_id, reported_by, reason, resolved, resolution_note, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (report.id, report.incident_id, report.reported_by, report.reason,
             report.resolved, report.resolution_note,
             to_iso(report.created_at), to_iso(report.updated_at))
        )
        return report

    def get(self, report_id: str) -> Optional[Report]:
        rows = self.db.execute_query("SELECT * FROM reports WHERE id = ?", (str(report_id),))
        return self._row_to_report(rows[0]) if rows else None

    def mark_resolved(self, report_id: str, resolution_note: str = "") -> bool:
        """
        Flip ``resolved`` from false to true

        Returns:
            True for the single caller that performed the transition, False
            when the report was already resolved (or does not exist)
        """
        updated = self.db.execute_update(
            """
            UPDATE reports SET resolved = 1, resolution_note = ?, updated_at = ?
            WHERE id = ? AND resolved = 0
            """,
            (resolution_note, to_iso(utc_now()), str(report_id))
        )
        return updated == 1

    def count_pending(self) -> int:
        return self.db.count("SELECT COUNT(*) FROM reports WHERE resolved = 0")

    def _row_to_report(self, row) -> Report:
        return Report(
            id=row['id'],
            incident_id=row['incident_id'],
            reported_by=row['reported_by'],
            reason=row['reason'],
            resolved=bool(row['resolved']),
            resolution_note=row['resolution_note'] or "",
            created_at=from_iso(row['created_at']),
            updated_at=from_iso(row['updated_at'])
        )
