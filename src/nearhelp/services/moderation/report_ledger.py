"""
Report/Moderation Ledger

Users flag incidents; administrators resolve flags and may confirm a false
alert, which penalizes the incident creator through the Trust Ledger.
"""

import logging
from typing import Optional

from ...core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ...core.logging import LogContext, get_structured_logger
from ...models.report import Report
from ...models.user import Identity
from ..incidents.incident_repository import IncidentRepository
from ..live.fanout import FanoutNotifier
from ..users.trust_ledger import TrustLedger
from .report_repository import ReportRepository


class ReportLedger:
    """Flag and resolve abuse reports"""

    def __init__(self, reports: ReportRepository, incidents: IncidentRepository,
                 trust: TrustLedger, fanout: FanoutNotifier):
        self.logger = logging.getLogger(__name__)
        self.audit = get_structured_logger(__name__)
        self.reports = reports
        self.incidents = incidents
        self.trust = trust
        self.fanout = fanout

    async def flag(self, actor: Identity, incident_id: str, reason: str) -> Report:
        """
        Raise a report against an incident. Repeated flags are all kept.

        Raises:
            ValidationError: incident id or reason missing
            NotFoundError: incident does not exist
        """
        incident_id = str(incident_id or '').strip()
        reason = str(reason or '').strip()
        if not incident_id or not reason:
            raise ValidationError("sosId and reason are required")

        if self.incidents.get(incident_id) is None:
            raise NotFoundError("SOS not found")

        report = self.reports.create(Report(
            incident_id=incident_id,
            reported_by=actor.user_id,
            reason=reason
        ))
        self.audit.info("report_flagged", report_id=report.id, incident_id=incident_id,
                        actor=actor.user_id)

        self.fanout.publish_metrics()
        return report

    async def resolve_report(self, moderator: Identity, report_id: str,
                             resolution_note: Optional[str] = None,
                             false_alert: bool = False) -> Report:
        """
        Close a report exactly once

        Args:
            moderator: Acting identity, must be an admin
            report_id: Report to close
            resolution_note: Free-text moderator note
            false_alert: Confirms the incident was a false alert and
                penalizes its creator

        Raises:
            ForbiddenError: moderator is not an admin
            NotFoundError: report does not exist
            ConflictError: report already resolved
        """
        if not moderator.is_admin:
            raise ForbiddenError("Admin role required")

        report = self.reports.get(report_id)
        if report is None:
            raise NotFoundError("Report not found")
        if report.resolved:
            raise ConflictError("Report already resolved")

        note = resolution_note or ""
        if not self.reports.mark_resolved(report.id, note):
            raise ConflictError("Report already resolved")

        with LogContext(self.audit, report_id=report.id, incident_id=report.incident_id,
                        actor=moderator.user_id) as audit:
            if false_alert:
                incident = self.incidents.get(report.incident_id)
                if incident is not None:
                    score = self.trust.apply_false_alert_penalty(incident.created_by)
                    audit.info("false_alert_confirmed", creator=incident.created_by, trust_score=score)
                else:
                    audit.warning("false_alert_incident_missing")

            audit.info("report_resolved", false_alert=bool(false_alert))
        self.fanout.publish_metrics()
        return self.reports.get(report.id)
