"""
Data models for NearHelp

Contains the dataclasses shared by the incident, moderation and user services.
"""

from .incident import (
    CrisisType, IncidentStatus, ResponseAction, GeoPoint,
    ResponderLocation, Incident, ResponseLogEntry, ALLOWED_RADII
)
from .user import User, Role, Identity, TRUST_SCORE_MIN, TRUST_SCORE_MAX, TRUST_SCORE_DEFAULT
from .report import Report

__all__ = [
    'CrisisType', 'IncidentStatus', 'ResponseAction', 'GeoPoint',
    'ResponderLocation', 'Incident', 'ResponseLogEntry', 'ALLOWED_RADII',
    'User', 'Role', 'Identity', 'TRUST_SCORE_MIN', 'TRUST_SCORE_MAX',
    'TRUST_SCORE_DEFAULT', 'Report'
]
