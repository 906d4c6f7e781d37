"""
Moderation report model
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict
import uuid

from ..core.clock import utc_now, to_iso


@dataclass
class Report:
    """Abuse flag raised against an incident"""
    incident_id: str
    reported_by: str
    reason: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    resolved: bool = False
    resolution_note: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'incidentId': self.incident_id,
            'reportedBy': self.reported_by,
            'reason': self.reason,
            'resolved': self.resolved,
            'resolutionNote': self.resolution_note,
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
        }
