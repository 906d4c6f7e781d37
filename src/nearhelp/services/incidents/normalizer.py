"""
Wire representation of an incident

Pure functions: the caller resolves referenced users up front and passes
them in, so the same snapshot is produced for HTTP responses and live
events.
"""

from typing import Any, Dict, Iterable, List, Mapping

from ...core.clock import to_iso
from ...models.incident import Incident
from ...models.user import User


ANONYMOUS_CREATOR = {'id': None, 'name': 'Anonymous'}
DEFAULT_RESPONDER_NAME = 'Responder'


def _creator(incident: Incident, users: Mapping[str, User]) -> Dict[str, Any]:
    if incident.anonymous:
        return dict(ANONYMOUS_CREATOR)

    creator = users.get(str(incident.created_by))
    if creator is None:
        return {'id': None, 'name': None, 'email': None}
    return {'id': creator.id, 'name': creator.name, 'email': creator.email}


def _responders(incident: Incident, users: Mapping[str, User]) -> List[Dict[str, Any]]:
    responders = []
    for responder_id in incident.responders:
        user = users.get(str(responder_id))
        if user is None:
            continue
        responders.append({
            'id': user.id,
            'name': user.name,
            'skills': list(user.skills),
            'trustScore': user.trust_score,
            'verified': user.verified,
        })
    return responders


def _responder_locations(incident: Incident, users: Mapping[str, User]) -> List[Dict[str, Any]]:
    locations = []
    for entry in incident.responder_locations:
        user = users.get(str(entry.responder_id))
        locations.append({
            'responderId': entry.responder_id,
            'responderName': user.name if user and user.name else DEFAULT_RESPONDER_NAME,
            'lat': entry.point.lat,
            'lng': entry.point.lng,
            'updatedAt': to_iso(entry.updated_at),
        })
    return locations


def normalize_incident(incident: Incident, users: Mapping[str, User]) -> Dict[str, Any]:
    """
    Build the client-facing snapshot of ``incident``

    Args:
        incident: Incident to render
        users: Users referenced by the incident, keyed by id. Missing
            responders are omitted; missing locations fall back to a
            generic responder name.

    Returns:
        JSON-serializable dictionary
    """
    return {
        'id': incident.id,
        'crisisType': incident.crisis_type.value,
        'description': incident.description,
        'location': {
            'lat': incident.location.lat,
            'lng': incident.location.lng,
            'address': incident.address,
        },
        'radiusMeters': incident.radius_meters,
        'status': incident.status.value,
        'anonymous': incident.anonymous,
        'createdBy': _creator(incident, users),
        'responders': _responders(incident, users),
        'responderLocations': _responder_locations(incident, users),
        'createdAt': to_iso(incident.created_at),
        'updatedAt': to_iso(incident.updated_at),
        'resolvedAt': to_iso(incident.resolved_at),
    }


def referenced_user_ids(incidents: Iterable[Incident]) -> List[str]:
    ids: List[str] = []
    for incident in incidents:
        ids.extend(incident.referenced_user_ids())
    return list(dict.fromkeys(ids))
