"""
Incident State Machine

Drives an SOS incident from creation through response to resolution:
- Create validates and persists a new active incident
- Respond enrolls the caller as responder and records their position
- Resolve closes the incident as resolved (crediting responders) or as
  cancelled when the creator closes it alone

Mutations on one incident are serialized by a per-incident lock and the
repository's version check. Broadcasts and email alerts are detached.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from ...core.clock import utc_now
from ...core.errors import ForbiddenError, NearHelpError, NotFoundError, ValidationError
from ...core.locks import KeyedLock
from ...core.logging import get_structured_logger
from ...core.tasks import BackgroundTaskRunner
from ...models.incident import (
    ALLOWED_RADII, CrisisType, GeoPoint, Incident, IncidentStatus,
    ResponseAction, ResponseLogEntry
)
from ...models.user import Identity
from ..live.fanout import FanoutNotifier, LiveEvent
from ..live.metrics import MetricsService
from ..notifications.email_notifier import EmailNotifier, compose_incident_alert
from ..users.trust_ledger import TrustLedger, RESOLUTION_CREDIT
from ..users.user_repository import UserRepository
from .incident_repository import IncidentRepository
from .normalizer import normalize_incident, referenced_user_ids
from .response_log import ResponseLogRepository


CLOSED_BY_CREATOR_NOTE = "Closed by creator"
LOCATION_UPDATED_NOTE = "Location updated"


def _parse_crisis_type(value: Any) -> CrisisType:
    try:
        return CrisisType(value)
    except ValueError:
        raise ValidationError(
            f"crisisType must be one of: {', '.join(c.value for c in CrisisType)}"
        )


def _parse_radius(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("radiusMeters is required")
    if not math.isfinite(value) or value not in ALLOWED_RADII:
        raise ValidationError(
            f"radiusMeters must be one of: {', '.join(str(r) for r in ALLOWED_RADII)}"
        )
    return int(value)


def _optional_point(lat: Any, lng: Any) -> Optional[GeoPoint]:
    """A usable point only when both coordinates are valid numbers"""
    if lat is None or lng is None:
        return None
    if not GeoPoint.is_valid(lat, lng):
        return None
    return GeoPoint(float(lat), float(lng))


class IncidentService:
    """Lifecycle operations on SOS incidents"""

    def __init__(self, incidents: IncidentRepository, response_log: ResponseLogRepository,
                 users: UserRepository, trust: TrustLedger, fanout: FanoutNotifier,
                 metrics: MetricsService, runner: BackgroundTaskRunner,
                 email: Optional[EmailNotifier] = None,
                 config: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(__name__)
        self.audit = get_structured_logger(__name__)
        self.incidents = incidents
        self.response_log = response_log
        self.users = users
        self.trust = trust
        self.fanout = fanout
        self.metrics = metrics
        self.runner = runner
        self.email = email
        self.locks = KeyedLock()

        config = config or {}
        self.default_search_radius = config.get('default_search_radius', 2000)
        self.active_limit = config.get('active_limit', 100)
        self.mine_limit = config.get('mine_limit', 200)

    # Snapshots

    def snapshot(self, incident: Incident) -> Dict[str, Any]:
        users = self.users.get_many(incident.referenced_user_ids())
        return normalize_incident(incident, users)

    def snapshots(self, incidents: List[Incident]) -> List[Dict[str, Any]]:
        users = self.users.get_many(referenced_user_ids(incidents))
        return [normalize_incident(incident, users) for incident in incidents]

    # Lifecycle

    async def create(self, actor: Identity, crisis_type: Any, lat: Any, lng: Any,
                     radius_meters: Any, address: Optional[str] = None,
                     description: Optional[str] = None,
                     anonymous: bool = False) -> Dict[str, Any]:
        """
        Open a new active incident

        Args:
            actor: Requester identity
            crisis_type: One of medical, breakdown, gas_leak, other
            lat: Latitude in degrees
            lng: Longitude in degrees
            radius_meters: Alert radius, 500, 1000 or 2000
            address: Optional human-readable address
            description: Optional free text
            anonymous: Hide the requester in snapshots

        Returns:
            Normalized incident snapshot

        Raises:
            ValidationError: a required field is missing or invalid
        """
        if not crisis_type:
            raise ValidationError("crisisType, lat, lng and radiusMeters are required")
        parsed_type = _parse_crisis_type(crisis_type)

        if lat is None or lng is None:
            raise ValidationError("crisisType, lat, lng and radiusMeters are required")
        if not GeoPoint.is_valid(lat, lng):
            raise ValidationError("lat and lng must be finite coordinates within range")

        radius = _parse_radius(radius_meters)

        incident = Incident(
            crisis_type=parsed_type,
            location=GeoPoint(float(lat), float(lng)),
            radius_meters=radius,
            created_by=actor.user_id,
            description=(description or "").strip(),
            address=(address or "").strip(),
            anonymous=bool(anonymous)
        )
        self.incidents.create(incident)
        self.audit.info("incident_created", incident_id=incident.id, actor=actor.user_id,
                        crisis_type=parsed_type.value, radius_meters=radius)

        snapshot = self.snapshot(incident)
        self.fanout.publish(LiveEvent.INCIDENT_CREATED, snapshot)
        self.fanout.publish_metrics()
        self.runner.spawn(self._alert_users(incident), name=f"email-alert:{incident.id}")
        return snapshot

    async def respond(self, actor: Identity, incident_id: str,
                      lat: Any = None, lng: Any = None) -> Dict[str, Any]:
        """
        Join an incident as responder and optionally share a position

        Joining is idempotent. A position replaces the caller's previous one.

        Raises:
            NotFoundError: incident missing or no longer active
            ForbiddenError: caller is the creator and not an admin
        """
        async with self.locks.hold(incident_id):
            incident = self.incidents.get(incident_id)
            if incident is None or not incident.is_active():
                raise NotFoundError("Active SOS not found")

            if incident.is_creator(actor.user_id) and not actor.is_admin:
                raise ForbiddenError("Creator cannot respond to own SOS")

            joined = incident.add_responder(actor.user_id)
            point = _optional_point(lat, lng)
            if point is not None:
                incident.upsert_responder_location(actor.user_id, point, utc_now())

            if joined or point is not None:
                entry = ResponseLogEntry(
                    incident_id=incident.id,
                    responder_id=actor.user_id,
                    action=ResponseAction.JOINED if joined else ResponseAction.STATUS_UPDATE,
                    note="" if joined else LOCATION_UPDATED_NOTE
                )
                with self.incidents.transaction() as conn:
                    self.incidents.update(incident, conn)
                    self.response_log.append(entry, conn)

            if joined:
                self.audit.info("responder_joined", incident_id=incident.id, actor=actor.user_id)

        snapshot = self.snapshot(incident)
        self.fanout.publish(LiveEvent.RESPONDER_JOINED, snapshot)
        self.fanout.publish(LiveEvent.INCIDENT_UPDATED, snapshot)
        return snapshot

    async def resolve(self, actor: Identity, incident_id: str,
                      note: Optional[str] = None) -> Dict[str, Any]:
        """
        Close an active incident

        A creator closing alone (not a responder, not an admin) cancels the
        incident. Anyone else permitted resolves it and every current
        responder earns trust.

        Raises:
            NotFoundError: incident missing or no longer active
            ForbiddenError: caller is not the creator, a responder or an admin
        """
        async with self.locks.hold(incident_id):
            incident = self.incidents.get(incident_id)
            if incident is None or not incident.is_active():
                raise NotFoundError("Active SOS not found")

            is_creator = incident.is_creator(actor.user_id)
            is_responder = incident.has_responder(actor.user_id)
            if not (is_creator or is_responder or actor.is_admin):
                raise ForbiddenError("Not allowed to resolve this SOS")

            cancelled_by_creator = is_creator and not is_responder and not actor.is_admin
            if cancelled_by_creator:
                incident.status = IncidentStatus.CANCELLED
                incident.resolved_at = None
            else:
                incident.status = IncidentStatus.RESOLVED
                incident.resolved_at = utc_now()

            entry = ResponseLogEntry(
                incident_id=incident.id,
                responder_id=actor.user_id,
                action=ResponseAction.STATUS_UPDATE if cancelled_by_creator else ResponseAction.RESOLVED,
                note=(note or CLOSED_BY_CREATOR_NOTE) if cancelled_by_creator else (note or "")
            )
            with self.incidents.transaction() as conn:
                self.incidents.update(incident, conn)
                self.response_log.append(entry, conn)

        if not cancelled_by_creator:
            credited = self.trust.increment(incident.responders, RESOLUTION_CREDIT)
            self.logger.debug(f"Credited {credited} responders on incident {incident.id}")

        self.audit.info("incident_closed", incident_id=incident.id, actor=actor.user_id,
                        status=incident.status.value)

        snapshot = self.snapshot(incident)
        self.fanout.publish(LiveEvent.INCIDENT_RESOLVED, snapshot)
        self.fanout.publish(LiveEvent.INCIDENT_UPDATED, snapshot)
        self.fanout.publish_metrics()
        return snapshot

    # Queries

    async def list_active(self, lat: Any = None, lng: Any = None,
                          max_distance: Any = None) -> List[Dict[str, Any]]:
        """Nearest first within ``max_distance`` when both coordinates are given"""
        near = _optional_point(lat, lng)
        distance = self.default_search_radius
        if max_distance is not None:
            if isinstance(max_distance, bool) or not isinstance(max_distance, (int, float)) \
                    or not math.isfinite(max_distance) or max_distance < 0:
                raise ValidationError("maxDistance must be a non-negative number")
            distance = max_distance

        incidents = self.incidents.find_active(near=near, max_distance=distance, limit=self.active_limit)
        return self.snapshots(incidents)

    async def list_mine(self, actor: Identity) -> List[Dict[str, Any]]:
        incidents = self.incidents.find_by_creator(actor.user_id, limit=self.mine_limit)
        return self.snapshots(incidents)

    async def stats(self) -> Dict[str, int]:
        return self.metrics.incident_stats()

    # Side effects

    async def _alert_users(self, incident: Incident):
        """Email every non-suspended user except the creator"""
        if self.email is None or not self.email.enabled:
            return

        recipients = [u.email for u in self.users.list_alert_recipients(incident.created_by) if u.email]
        if not recipients:
            return

        alert = compose_incident_alert(incident)
        try:
            await self.email.send(recipients, alert['subject'], alert['text'])
        except NearHelpError as e:
            self.logger.warning(f"Email alert skipped for incident {incident.id}: {e.message}")
