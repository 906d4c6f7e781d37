"""
NearHelp Main Application Entry Point

Wires configuration, logging, storage and the incident coordination
services together and serves them over FastAPI/uvicorn.
"""

import sys
import traceback
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .core.config import ConfigurationManager
from .core.database import DatabaseManager
from .core.logging import initialize_logging, get_logger
from .core.tasks import BackgroundTaskRunner
from .services.incidents.incident_repository import IncidentRepository
from .services.incidents.incident_service import IncidentService
from .services.incidents.response_log import ResponseLogRepository
from .services.live.channel import LiveChannelManager
from .services.live.fanout import FanoutNotifier
from .services.live.metrics import MetricsService
from .services.live.presence import InMemoryPresenceRegistry, PresenceRegistry
from .services.moderation.report_ledger import ReportLedger
from .services.moderation.report_repository import ReportRepository
from .services.notifications.email_notifier import EmailNotifier
from .services.users.auth_service import AuthService
from .services.users.identity import IdentityVerifier, TokenIssuer
from .services.users.trust_ledger import TrustLedger
from .services.users.user_repository import UserRepository
from .services.web.api_service import NearHelpAPI


class NearHelpApplication:
    """Main NearHelp application class"""

    def __init__(self, config_manager: Optional[ConfigurationManager] = None,
                 presence: Optional[PresenceRegistry] = None,
                 email: Optional[EmailNotifier] = None):
        self.config_manager = config_manager
        self.presence = presence
        self.email = email
        self.logger = None

        self.db_manager: Optional[DatabaseManager] = None
        self.runner: Optional[BackgroundTaskRunner] = None
        self.api: Optional[NearHelpAPI] = None
        self.running = False

    def initialize(self):
        """Initialize all application components"""
        try:
            if self.config_manager is None:
                self.config_manager = ConfigurationManager()
                self.config_manager.load_config()

            initialize_logging(self.config_manager.config)
            self.logger = get_logger('main')

            self.logger.info("NearHelp starting up...")
            self.logger.info(f"Version: {self.config_manager.get('app.version', '1.0.0')}")
            self.logger.info(f"Debug mode: {self.config_manager.get('app.debug', False)}")

            self._initialize_database()
            self._initialize_services()

            self.logger.info("Core systems initialized successfully")

        except Exception as e:
            if self.logger:
                self.logger.error(f"Failed to initialize application: {e}", exc_info=True)
            else:
                print(f"Failed to initialize application: {e}")
                traceback.print_exc()
            raise

    def _initialize_database(self):
        self.logger.info("Initializing database...")

        db_path = self.config_manager.get('database.path', 'data/nearhelp.db')
        max_connections = self.config_manager.get('database.max_connections', 10)
        self.db_manager = DatabaseManager(db_path, max_connections)

        self.logger.info("Database initialized successfully")

    def _initialize_services(self):
        config = self.config_manager

        self.runner = BackgroundTaskRunner("nearhelp")
        if self.presence is None:
            self.presence = InMemoryPresenceRegistry()
        if self.email is None:
            self.email = EmailNotifier(config.get_section('email'))

        self.users = UserRepository(self.db_manager)
        self.trust = TrustLedger(self.db_manager, self.users)
        self.incident_repository = IncidentRepository(self.db_manager)
        self.response_log = ResponseLogRepository(self.db_manager)
        self.report_repository = ReportRepository(self.db_manager)

        self.metrics = MetricsService(self.incident_repository, self.report_repository,
                                      self.users, self.presence)
        self.channel = LiveChannelManager(self.presence, config.get('live.send_timeout', 5.0))
        self.fanout = FanoutNotifier(self.channel, self.metrics, self.runner)

        secret = config.get('auth.jwt_secret')
        algorithm = config.get('auth.jwt_algorithm', 'HS256')
        self.issuer = TokenIssuer(secret, algorithm, config.get('auth.token_ttl_seconds', 7 * 24 * 3600))
        self.verifier = IdentityVerifier(secret, algorithm)
        self.auth = AuthService(self.users, self.issuer, config.get_admin_emails(),
                                config.get('auth.bcrypt_rounds', 10))

        self.incidents = IncidentService(
            self.incident_repository, self.response_log, self.users, self.trust,
            self.fanout, self.metrics, self.runner, email=self.email,
            config=config.get_section('incidents')
        )
        self.reports = ReportLedger(self.report_repository, self.incident_repository,
                                    self.trust, self.fanout)

        self.api = NearHelpAPI(
            self.auth, self.verifier, self.incidents, self.reports, self.metrics, self.channel,
            cors_origins=config.get_cors_origins(),
            debug=config.get('app.debug', False),
            version=config.get('app.version', '1.0.0'),
            lifespan=self.lifespan
        )

    async def start(self):
        self.presence.start()
        self.runner.restart()
        self.running = True
        self.logger.info("NearHelp started")

    async def stop(self):
        if not self.running:
            return
        self.logger.info("Shutting down NearHelp...")
        self.running = False

        await self.channel.close_all()
        await self.runner.drain()
        await self.runner.shutdown()
        self.presence.stop()
        self.db_manager.close()

        self.logger.info("NearHelp shutdown complete")

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        await self.start()
        try:
            yield
        finally:
            await self.stop()

    @property
    def app(self) -> FastAPI:
        return self.api.app


def create_app(config_manager: Optional[ConfigurationManager] = None) -> FastAPI:
    """Build a fully wired FastAPI application"""
    application = NearHelpApplication(config_manager)
    application.initialize()
    return application.app


def main():
    """Main entry point"""
    application = NearHelpApplication()
    try:
        application.initialize()
    except Exception:
        sys.exit(1)

    config = application.config_manager
    uvicorn.run(
        application.app,
        host=config.get('server.host', '0.0.0.0'),
        port=config.get('server.port', 5000),
        log_level=str(config.get('app.log_level', 'INFO')).lower()
    )


if __name__ == "__main__":
    main()
