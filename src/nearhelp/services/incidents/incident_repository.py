"""
Incident persistence

Incidents are stored one row per incident; responders and responder
locations are JSON columns. Writes are guarded by the ``version`` column so
a stale snapshot can never overwrite a newer one.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import List, Optional

from ...core.clock import utc_now, to_iso, from_iso
from ...core.database import DatabaseManager
from ...core.errors import ConflictError
from ...models.incident import (
    CrisisType, GeoPoint, Incident, IncidentStatus, ResponderLocation
)


class IncidentRepository:
    """Stores, loads and queries SOS incidents"""

    def __init__(self, db: DatabaseManager):
        self.logger = logging.getLogger(__name__)
        self.db = db

    def create(self, incident: Incident) -> Incident:
        self.db.execute_update(
            """
            INSERT INTO incidents
            (id, crisis_type, description, lat, lng, address, radius_meters, status,
             created_by, anonymous, responders, responder_locations, resolved_at,
             created_at, updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                incident.id,
                incident.crisis_type.value,
                incident.description,
                incident.location.lat,
                incident.location.lng,
                incident.address,
                incident.radius_meters,
                incident.status.value,
                incident.created_by,
                incident.anonymous,
                json.dumps(incident.responders),
                json.dumps([entry.to_dict() for entry in incident.responder_locations]),
                to_iso(incident.resolved_at),
                to_iso(incident.created_at),
                to_iso(incident.updated_at),
                incident.version
            )
        )
        return incident

    def get(self, incident_id: str) -> Optional[Incident]:
        rows = self.db.execute_query("SELECT * FROM incidents WHERE id = ?", (str(incident_id),))
        return self._row_to_incident(rows[0]) if rows else None

    def transaction(self):
        """Open a transaction shared by an incident write and its log entries"""
        return self.db.transaction()

    def update(self, incident: Incident, conn: Optional[sqlite3.Connection] = None) -> Incident:
        """
        Persist mutable fields of ``incident``, on ``conn`` when given

        Raises:
            ConflictError: the stored version moved on since ``incident`` was read
        """
        incident.updated_at = utc_now()
        query = """
            UPDATE incidents
            SET status = ?, responders = ?, responder_locations = ?, resolved_at = ?,
                updated_at = ?, version = version + 1
            WHERE id = ? AND version = ?
            """
        params = (
            incident.status.value,
            json.dumps(incident.responders),
            json.dumps([entry.to_dict() for entry in incident.responder_locations]),
            to_iso(incident.resolved_at),
            to_iso(incident.updated_at),
            incident.id,
            incident.version
        )
        if conn is None:
            updated = self.db.execute_update(query, params)
        else:
            updated = conn.execute(query, params).rowcount
        if updated == 0:
            self.logger.warning(f"Stale write rejected for incident {incident.id} at version {incident.version}")
            raise ConflictError("Incident was modified concurrently, retry")

        incident.version += 1
        return incident

    def find_active(self, near: Optional[GeoPoint] = None, max_distance: float = 2000,
                    limit: int = 100) -> List[Incident]:
        """
        Active incidents, nearest first within ``max_distance`` meters of
        ``near`` when given, otherwise newest first
        """
        if near is None:
            rows = self.db.execute_query(
                "SELECT * FROM incidents WHERE status = ? ORDER BY created_at DESC LIMIT ?",
                (IncidentStatus.ACTIVE.value, limit)
            )
            return [self._row_to_incident(row) for row in rows]

        rows = self.db.execute_query(
            "SELECT * FROM incidents WHERE status = ? ORDER BY created_at DESC",
            (IncidentStatus.ACTIVE.value,)
        )
        nearby = []
        for row in rows:
            incident = self._row_to_incident(row)
            distance = near.distance_to(incident.location)
            if distance <= max_distance:
                nearby.append((distance, incident))

        nearby.sort(key=lambda pair: pair[0])
        return [incident for _, incident in nearby[:limit]]

    def find_by_creator(self, user_id: str, limit: int = 200) -> List[Incident]:
        rows = self.db.execute_query(
            "SELECT * FROM incidents WHERE created_by = ? ORDER BY created_at DESC LIMIT ?",
            (str(user_id), limit)
        )
        return [self._row_to_incident(row) for row in rows]

    def count_active(self) -> int:
        return self.db.count(
            "SELECT COUNT(*) FROM incidents WHERE status = ?",
            (IncidentStatus.ACTIVE.value,)
        )

    def count_resolved_since(self, since: datetime) -> int:
        """Resolved (not cancelled) incidents with resolved_at at or after ``since``"""
        return self.db.count(
            "SELECT COUNT(*) FROM incidents WHERE status = ? AND resolved_at >= ?",
            (IncidentStatus.RESOLVED.value, to_iso(since))
        )

    def _row_to_incident(self, row) -> Incident:
        try:
            responders = json.loads(row['responders']) if row['responders'] else []
        except (json.JSONDecodeError, TypeError):
            responders = []

        try:
            raw_locations = json.loads(row['responder_locations']) if row['responder_locations'] else []
        except (json.JSONDecodeError, TypeError):
            raw_locations = []

        return Incident(
            id=row['id'],
            crisis_type=CrisisType(row['crisis_type']),
            description=row['description'] or "",
            location=GeoPoint(float(row['lat']), float(row['lng'])),
            address=row['address'] or "",
            radius_meters=int(row['radius_meters']),
            status=IncidentStatus(row['status']),
            created_by=row['created_by'],
            anonymous=bool(row['anonymous']),
            responders=[str(r) for r in responders],
            responder_locations=[ResponderLocation.from_dict(entry) for entry in raw_locations],
            resolved_at=from_iso(row['resolved_at']),
            created_at=from_iso(row['created_at']),
            updated_at=from_iso(row['updated_at']),
            version=int(row['version'])
        )
