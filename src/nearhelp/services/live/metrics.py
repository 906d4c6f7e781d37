"""
Aggregate operational metrics
"""

from datetime import datetime
from typing import Any, Dict, Optional

from ...core.clock import utc_now, start_of_utc_day, to_iso
from ..incidents.incident_repository import IncidentRepository
from ..moderation.report_repository import ReportRepository
from ..users.user_repository import UserRepository
from .presence import PresenceRegistry


class MetricsService:
    """Computes dashboard counters on demand"""

    def __init__(self, incidents: IncidentRepository, reports: ReportRepository,
                 users: UserRepository, presence: PresenceRegistry):
        self.incidents = incidents
        self.reports = reports
        self.users = users
        self.presence = presence

    def snapshot(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()
        return {
            'activeIncidents': self.incidents.count_active(),
            'resolvedToday': self.incidents.count_resolved_since(start_of_utc_day(now)),
            'pendingReports': self.reports.count_pending(),
            'suspendedUsers': self.users.count_suspended(),
            'verifiedResponders': self.users.count_verified(),
            'activeUsers': self.presence.count_active_users(),
            'generatedAt': to_iso(now),
        }

    def incident_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Public summary shown to every signed-in user"""
        now = now or utc_now()
        return {
            'activeUsers': self.presence.count_active_users(),
            'activeIssues': self.incidents.count_active(),
            'resolvedToday': self.incidents.count_resolved_since(start_of_utc_day(now)),
        }
