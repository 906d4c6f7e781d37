"""
Incident data models for NearHelp

Defines the SOS incident aggregate, its responder tracking structures and
the append-only response log entry.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import math
import uuid

from ..core.clock import utc_now, to_iso, from_iso


class CrisisType(Enum):
    """Kinds of crisis a requester can broadcast"""
    MEDICAL = "medical"
    BREAKDOWN = "breakdown"
    GAS_LEAK = "gas_leak"
    OTHER = "other"


class IncidentStatus(Enum):
    """SOS incident status"""
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class ResponseAction(Enum):
    """Audit classification of responder activity"""
    JOINED = "joined"
    STATUS_UPDATE = "status_update"
    RESOLVED = "resolved"


ALLOWED_RADII = (500, 1000, 2000)


@dataclass(frozen=True)
class GeoPoint:
    """WGS84 point"""
    lat: float
    lng: float

    @staticmethod
    def is_valid(lat: Any, lng: Any) -> bool:
        """Both coordinates are finite real numbers within WGS84 bounds"""
        for value in (lat, lng):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
            if not math.isfinite(value):
                return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0

    def distance_to(self, other: 'GeoPoint') -> float:
        """
        Great-circle distance to another point in meters (haversine)
        """
        R = 6371000.0  # Earth's radius in meters

        lat1_rad = math.radians(self.lat)
        lat2_rad = math.radians(other.lat)
        delta_lat = math.radians(other.lat - self.lat)
        delta_lng = math.radians(other.lng - self.lng)

        a = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lng / 2) ** 2)
        a = min(1.0, a)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return R * c


@dataclass
class ResponderLocation:
    """Latest known position of one responder"""
    responder_id: str
    point: GeoPoint
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'responder_id': self.responder_id,
            'lat': self.point.lat,
            'lng': self.point.lng,
            'updated_at': to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResponderLocation':
        return cls(
            responder_id=str(data['responder_id']),
            point=GeoPoint(float(data['lat']), float(data['lng'])),
            updated_at=from_iso(data.get('updated_at')) or utc_now(),
        )


@dataclass
class Incident:
    """SOS incident aggregate"""
    crisis_type: CrisisType
    location: GeoPoint
    radius_meters: int
    created_by: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    description: str = ""
    address: str = ""
    anonymous: bool = False
    status: IncidentStatus = IncidentStatus.ACTIVE
    responders: List[str] = field(default_factory=list)
    responder_locations: List[ResponderLocation] = field(default_factory=list)
    resolved_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: int = 1

    def is_active(self) -> bool:
        return self.status == IncidentStatus.ACTIVE

    def is_creator(self, user_id: str) -> bool:
        return str(self.created_by) == str(user_id)

    def has_responder(self, user_id: str) -> bool:
        return str(user_id) in {str(r) for r in self.responders}

    def add_responder(self, responder_id: str) -> bool:
        """Append responder if absent; True when membership was created"""
        if self.has_responder(responder_id):
            return False
        self.responders.append(str(responder_id))
        return True

    def upsert_responder_location(self, responder_id: str, point: GeoPoint,
                                  at: Optional[datetime] = None) -> ResponderLocation:
        """Last write wins, one entry per responder"""
        at = at or utc_now()
        entry = self.location_for(responder_id)
        if entry is not None:
            entry.point = point
            entry.updated_at = at
            return entry

        entry = ResponderLocation(responder_id=str(responder_id), point=point, updated_at=at)
        self.responder_locations.append(entry)
        return entry

    def location_for(self, responder_id: str) -> Optional[ResponderLocation]:
        for entry in self.responder_locations:
            if str(entry.responder_id) == str(responder_id):
                return entry
        return None

    def referenced_user_ids(self) -> List[str]:
        """Every user id the wire snapshot needs to join against"""
        ids = [str(self.created_by)]
        ids.extend(str(r) for r in self.responders)
        ids.extend(str(entry.responder_id) for entry in self.responder_locations)
        return list(dict.fromkeys(ids))


@dataclass
class ResponseLogEntry:
    """Write-once audit record of responder activity"""
    incident_id: str
    responder_id: str
    action: ResponseAction
    note: str = ""
    created_at: datetime = field(default_factory=utc_now)
    id: Optional[int] = None
