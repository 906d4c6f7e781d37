"""
Unit tests for the incident wire snapshot.
"""

from datetime import datetime, timezone

from nearhelp.models.incident import CrisisType, GeoPoint, Incident, IncidentStatus
from nearhelp.models.user import User
from nearhelp.services.incidents.normalizer import normalize_incident, referenced_user_ids


def _user(user_id, name, **kwargs):
    return User(id=user_id, name=name, email=f"{name.lower()}@example.com",
                password_hash="x", **kwargs)


def _incident(**kwargs):
    defaults = dict(
        id="inc-1",
        crisis_type=CrisisType.MEDICAL,
        location=GeoPoint(30.7415, 76.7681),
        radius_meters=1000,
        created_by="u-creator",
        created_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        updated_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return Incident(**defaults)


class TestNormalizeIncident:

    def test_full_snapshot(self):
        incident = _incident(address="Sector 17", description="Fainted")
        responder_at = datetime(2026, 1, 2, 3, 10, tzinfo=timezone.utc)
        incident.add_responder("u-resp")
        incident.upsert_responder_location("u-resp", GeoPoint(30.74, 76.77), responder_at)
        users = {
            "u-creator": _user("u-creator", "Creator"),
            "u-resp": _user("u-resp", "Resp", skills=["cpr"], trust_score=4.2, verified=True),
        }

        snapshot = normalize_incident(incident, users)

        assert snapshot == {
            'id': 'inc-1',
            'crisisType': 'medical',
            'description': 'Fainted',
            'location': {'lat': 30.7415, 'lng': 76.7681, 'address': 'Sector 17'},
            'radiusMeters': 1000,
            'status': 'active',
            'anonymous': False,
            'createdBy': {'id': 'u-creator', 'name': 'Creator', 'email': 'creator@example.com'},
            'responders': [{'id': 'u-resp', 'name': 'Resp', 'skills': ['cpr'],
                            'trustScore': 4.2, 'verified': True}],
            'responderLocations': [{'responderId': 'u-resp', 'responderName': 'Resp',
                                    'lat': 30.74, 'lng': 76.77,
                                    'updatedAt': '2026-01-02T03:10:00.000000+00:00'}],
            'createdAt': '2026-01-02T03:04:05.000000+00:00',
            'updatedAt': '2026-01-02T03:04:05.000000+00:00',
            'resolvedAt': None,
        }

    def test_anonymous_creator(self):
        snapshot = normalize_incident(_incident(anonymous=True), {"u-creator": _user("u-creator", "Creator")})

        assert snapshot['createdBy'] == {'id': None, 'name': 'Anonymous'}

    def test_missing_users_degrade_gracefully(self):
        incident = _incident(status=IncidentStatus.RESOLVED,
                             resolved_at=datetime(2026, 1, 2, 4, 0, tzinfo=timezone.utc))
        incident.add_responder("u-gone")
        incident.upsert_responder_location("u-gone", GeoPoint(1.0, 2.0))

        snapshot = normalize_incident(incident, {})

        assert snapshot['createdBy'] == {'id': None, 'name': None, 'email': None}
        assert snapshot['responders'] == []
        assert snapshot['responderLocations'][0]['responderName'] == 'Responder'
        assert snapshot['resolvedAt'] == '2026-01-02T04:00:00.000000+00:00'

    def test_referenced_user_ids_are_unique(self):
        first = _incident()
        first.add_responder("u-a")
        second = _incident(created_by="u-a")
        second.add_responder("u-creator")

        assert referenced_user_ids([first, second]) == ["u-creator", "u-a"]

    def test_pure_function_does_not_mutate(self):
        incident = _incident()
        before = (list(incident.responders), incident.version)

        normalize_incident(incident, {})

        assert (list(incident.responders), incident.version) == before
