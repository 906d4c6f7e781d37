"""
Base test classes for NearHelp testing.
"""
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import List, Optional

from nearhelp.core.database import DatabaseManager
from nearhelp.core.tasks import BackgroundTaskRunner
from nearhelp.models.user import Identity, Role, User
from nearhelp.services.incidents.incident_repository import IncidentRepository
from nearhelp.services.incidents.incident_service import IncidentService
from nearhelp.services.incidents.response_log import ResponseLogRepository
from nearhelp.services.live.channel import LiveChannelManager
from nearhelp.services.live.fanout import FanoutNotifier
from nearhelp.services.live.metrics import MetricsService
from nearhelp.services.live.presence import InMemoryPresenceRegistry, PresenceRegistry
from nearhelp.services.moderation.report_ledger import ReportLedger
from nearhelp.services.moderation.report_repository import ReportRepository
from nearhelp.services.users.trust_ledger import TrustLedger
from nearhelp.services.users.user_repository import UserRepository

from tests.mocks.email_mocks import MockEmailNotifier
from tests.mocks.live_mocks import MockWebSocket


def build_services(db: DatabaseManager, email=None,
                   presence: Optional[PresenceRegistry] = None,
                   send_timeout: float = 1.0) -> SimpleNamespace:
    """Wire the incident coordination services around ``db``"""
    runner = BackgroundTaskRunner("test")
    presence = presence or InMemoryPresenceRegistry()
    presence.start()

    users = UserRepository(db)
    trust = TrustLedger(db, users)
    incident_repository = IncidentRepository(db)
    response_log = ResponseLogRepository(db)
    report_repository = ReportRepository(db)

    metrics = MetricsService(incident_repository, report_repository, users, presence)
    channel = LiveChannelManager(presence, send_timeout=send_timeout)
    fanout = FanoutNotifier(channel, metrics, runner)

    incidents = IncidentService(incident_repository, response_log, users, trust,
                                fanout, metrics, runner, email=email)
    reports = ReportLedger(report_repository, incident_repository, trust, fanout)

    return SimpleNamespace(
        db=db, runner=runner, presence=presence, users=users, trust=trust,
        incident_repository=incident_repository, response_log=response_log,
        report_repository=report_repository, metrics=metrics, channel=channel,
        fanout=fanout, incidents=incidents, reports=reports, email=email
    )


def insert_user(users: UserRepository, name: str = "User", email: Optional[str] = None,
                role: Role = Role.NORMAL, trust_score: float = 3.5,
                verified: bool = False, suspended: bool = False,
                skills: Optional[List[str]] = None) -> Identity:
    """Store a user directly and return the identity a verified token would yield"""
    user = User(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        password_hash="not-a-real-hash",
        skills=skills or [],
        trust_score=trust_score,
        verified=verified,
        suspended=suspended,
        role=role
    )
    users.create(user)
    return Identity(user_id=user.id, role=role, email=user.email)


class BaseTestCase:
    """Base class for all test cases."""

    def setup_method(self):
        """Set up test method."""
        self._temp_dir = tempfile.TemporaryDirectory()
        self.temp_path = Path(self._temp_dir.name)

    def teardown_method(self):
        """Clean up after test method."""
        self._temp_dir.cleanup()


class ServiceTestCase(BaseTestCase):
    """Base class for tests that exercise the wired services against a temp database."""

    def setup_method(self):
        super().setup_method()
        self.db = DatabaseManager(str(self.temp_path / "nearhelp.db"))
        self.email = MockEmailNotifier()
        self.services = build_services(self.db, email=self.email)

        self.users = self.services.users
        self.incidents = self.services.incidents
        self.reports = self.services.reports
        self.runner = self.services.runner
        self.channel = self.services.channel
        self.presence = self.services.presence

    def teardown_method(self):
        self.db.close()
        super().teardown_method()

    def create_user(self, name: str = "User", **kwargs) -> Identity:
        return insert_user(self.users, name, **kwargs)

    async def open_session(self, identity: Optional[Identity] = None) -> MockWebSocket:
        websocket = MockWebSocket()
        await self.channel.connect(websocket, identity)
        return websocket

    async def settle(self):
        """Wait for detached broadcasts and alerts to finish"""
        await self.runner.drain(timeout=2.0)

    async def create_incident(self, actor: Identity, crisis_type: str = "medical",
                              lat: float = 30.7415, lng: float = 76.7681,
                              radius_meters: int = 1000, **kwargs):
        return await self.incidents.create(actor, crisis_type, lat, lng, radius_meters, **kwargs)
