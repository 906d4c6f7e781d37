"""
Unit tests for the report/moderation ledger.
"""

import asyncio

import pytest

from nearhelp.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from nearhelp.models.user import Role

from tests.base import ServiceTestCase


class TestFlagReport(ServiceTestCase):

    @pytest.mark.asyncio
    async def test_flag_creates_pending_report(self):
        alice = self.create_user("Alice")
        bob = self.create_user("Bob")
        incident = await self.create_incident(alice)

        report = await self.reports.flag(bob, incident['id'], "Looks fake")

        assert report.incident_id == incident['id']
        assert report.reported_by == bob.user_id
        assert report.reason == "Looks fake"
        assert report.resolved is False
        assert self.services.report_repository.count_pending() == 1

    @pytest.mark.asyncio
    async def test_repeated_flags_are_not_deduplicated(self):
        alice = self.create_user("Alice")
        bob = self.create_user("Bob")
        incident = await self.create_incident(alice)

        first = await self.reports.flag(bob, incident['id'], "spam")
        second = await self.reports.flag(bob, incident['id'], "spam")

        assert first.id != second.id
        assert self.services.report_repository.count_pending() == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("incident_id, reason", [("", "spam"), (None, "spam"), ("x", ""), ("x", "   ")])
    async def test_flag_requires_incident_and_reason(self, incident_id, reason):
        bob = self.create_user("Bob")

        with pytest.raises(ValidationError):
            await self.reports.flag(bob, incident_id, reason)

    @pytest.mark.asyncio
    async def test_flag_unknown_incident(self):
        bob = self.create_user("Bob")

        with pytest.raises(NotFoundError):
            await self.reports.flag(bob, "missing", "spam")

    @pytest.mark.asyncio
    async def test_flag_refreshes_metrics(self):
        alice = self.create_user("Alice")
        incident = await self.create_incident(alice)
        await self.settle()
        watcher = await self.open_session()

        await self.reports.flag(alice, incident['id'], "duplicate")
        await self.settle()

        assert watcher.last('metrics.updated')['pendingReports'] == 1


class TestResolveReport(ServiceTestCase):

    def setup_method(self):
        super().setup_method()
        self.admin = self.create_user("Admin", role=Role.ADMIN)
        self.creator = self.create_user("Creator")
        self.reporter = self.create_user("Reporter")

    async def _flagged_report(self):
        incident = await self.create_incident(self.creator)
        return await self.reports.flag(self.reporter, incident['id'], "false alarm")

    @pytest.mark.asyncio
    async def test_non_admin_is_forbidden(self):
        report = await self._flagged_report()

        with pytest.raises(ForbiddenError):
            await self.reports.resolve_report(self.reporter, report.id)

        assert self.services.report_repository.get(report.id).resolved is False

    @pytest.mark.asyncio
    async def test_unknown_report(self):
        with pytest.raises(NotFoundError):
            await self.reports.resolve_report(self.admin, "missing")

    @pytest.mark.asyncio
    async def test_resolves_once_then_conflicts(self):
        report = await self._flagged_report()

        resolved = await self.reports.resolve_report(self.admin, report.id, "checked")

        assert resolved.resolved is True
        assert resolved.resolution_note == "checked"
        with pytest.raises(ConflictError):
            await self.reports.resolve_report(self.admin, report.id)

    @pytest.mark.asyncio
    async def test_concurrent_resolution_happens_exactly_once(self):
        report = await self._flagged_report()

        results = await asyncio.gather(
            *[self.reports.resolve_report(self.admin, report.id, false_alert=True) for _ in range(3)],
            return_exceptions=True
        )

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(conflicts) == 2
        assert self.services.trust.get_score(self.creator.user_id) == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_plain_resolution_leaves_trust_untouched(self):
        report = await self._flagged_report()

        await self.reports.resolve_report(self.admin, report.id, false_alert=False)

        assert self.services.trust.get_score(self.creator.user_id) == pytest.approx(3.5)

    @pytest.mark.asyncio
    async def test_false_alerts_suspend_at_threshold(self):
        scores = []
        for _ in range(4):
            report = await self._flagged_report()
            await self.reports.resolve_report(self.admin, report.id, false_alert=True)
            scores.append(self.services.trust.get_score(self.creator.user_id))

        assert scores == pytest.approx([3.0, 2.5, 2.0, 1.5])
        creator = self.users.get(self.creator.user_id)
        assert creator.suspended is True

    @pytest.mark.asyncio
    async def test_false_alert_above_threshold_does_not_suspend(self):
        report = await self._flagged_report()

        await self.reports.resolve_report(self.admin, report.id, false_alert=True)

        assert self.users.get(self.creator.user_id).suspended is False

    @pytest.mark.asyncio
    async def test_resolution_refreshes_metrics(self):
        report = await self._flagged_report()
        await self.settle()
        watcher = await self.open_session()

        await self.reports.resolve_report(self.admin, report.id)
        await self.settle()

        assert watcher.last('metrics.updated')['pendingReports'] == 0
