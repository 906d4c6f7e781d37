"""
HTTP and websocket API for NearHelp

Exposes the incident, moderation, auth and guidance operations over FastAPI
and serves the live event channel on /ws.
"""

import logging
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...core.errors import ForbiddenError, NearHelpError, UnauthenticatedError
from ...models.user import Identity
from ..incidents.incident_service import IncidentService
from ..live.channel import LiveChannelManager
from ..live.metrics import MetricsService
from ..moderation.report_ledger import ReportLedger
from ..notifications.guidance import crisis_assist
from ..users.auth_service import AuthService
from ..users.identity import IdentityVerifier
from .schemas import (
    CreateIncidentRequest, CrisisAssistRequest, FlagReportRequest, LoginRequest,
    RegisterRequest, ResolveIncidentRequest, ResolveReportRequest, RespondRequest
)


def _bearer_token(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    if value.lower().startswith('bearer '):
        return value[7:].strip() or None
    return value


def _describe_validation_error(exc: RequestValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ()) if part != 'body')
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get('msg')))
    return '; '.join(problems) or "Invalid request"


class NearHelpAPI:
    """Builds the FastAPI application around the NearHelp services"""

    def __init__(self, auth: AuthService, verifier: IdentityVerifier,
                 incidents: IncidentService, reports: ReportLedger,
                 metrics: MetricsService, channel: LiveChannelManager,
                 cors_origins: Optional[List[str]] = None, debug: bool = False,
                 version: str = "1.0.0", lifespan: Optional[Callable] = None):
        self.logger = logging.getLogger(__name__)
        self.auth = auth
        self.verifier = verifier
        self.incidents = incidents
        self.reports = reports
        self.metrics = metrics
        self.channel = channel
        self.cors_origins = cors_origins or []

        self.app = FastAPI(
            title="NearHelp",
            description="Real-time SOS incident coordination",
            version=version,
            debug=debug,
            lifespan=lifespan
        )

        self.security = HTTPBearer(auto_error=False)

        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    def _setup_middleware(self):
        """Setup FastAPI middleware"""
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.cors_origins,
            allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    def _setup_exception_handlers(self):
        """Render every failure as {"error": kind, "message": text}"""

        @self.app.exception_handler(NearHelpError)
        async def nearhelp_error_handler(request: Request, exc: NearHelpError):
            if exc.status_code >= 500:
                self.logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            return JSONResponse(
                status_code=400,
                content={"error": "validation_error", "message": _describe_validation_error(exc)}
            )

        @self.app.exception_handler(Exception)
        async def unexpected_error_handler(request: Request, exc: Exception):
            self.logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
            return JSONResponse(
                status_code=500,
                content={"error": "internal_error", "message": "Server error"}
            )

    def _setup_routes(self):
        """Setup FastAPI routes"""

        # Authentication dependency
        async def get_current_user(
                credentials: Optional[HTTPAuthorizationCredentials] = Depends(self.security)) -> Identity:
            if credentials is None:
                raise UnauthenticatedError("Missing auth token")
            identity = self.verifier.verify(credentials.credentials)
            if self.auth.users.get(identity.user_id) is None:
                raise UnauthenticatedError("Unknown user")
            return identity

        async def require_admin(identity: Identity = Depends(get_current_user)) -> Identity:
            if not identity.is_admin:
                raise ForbiddenError("Admin access required")
            return identity

        @self.app.get("/health")
        async def health():
            return {"status": "ok", "service": "nearhelp", "liveConnections": self.channel.connection_count}

        # Auth
        @self.app.post("/api/auth/register", status_code=201)
        async def register(payload: RegisterRequest):
            return await self.auth.register(payload.name, payload.email, payload.password, payload.skills)

        @self.app.post("/api/auth/login")
        async def login(payload: LoginRequest):
            return await self.auth.login(payload.email, payload.password)

        # Incidents
        @self.app.post("/api/incidents", status_code=201)
        async def create_incident(payload: CreateIncidentRequest,
                                  identity: Identity = Depends(get_current_user)):
            incident = await self.incidents.create(
                identity,
                crisis_type=payload.crisisType,
                lat=payload.lat,
                lng=payload.lng,
                radius_meters=payload.radiusMeters,
                address=payload.address,
                description=payload.description,
                anonymous=payload.anonymous
            )
            return {"incident": incident}

        @self.app.get("/api/incidents/active")
        async def list_active(lat: Optional[float] = Query(None),
                              lng: Optional[float] = Query(None),
                              maxDistance: Optional[float] = Query(None),
                              identity: Identity = Depends(get_current_user)):
            incidents = await self.incidents.list_active(lat=lat, lng=lng, max_distance=maxDistance)
            return {"incidents": incidents}

        @self.app.get("/api/incidents/mine")
        async def list_mine(identity: Identity = Depends(get_current_user)):
            return {"incidents": await self.incidents.list_mine(identity)}

        @self.app.get("/api/incidents/stats")
        async def incident_stats(identity: Identity = Depends(get_current_user)):
            return {"stats": await self.incidents.stats()}

        @self.app.patch("/api/incidents/{incident_id}/respond")
        async def respond(incident_id: str, payload: Optional[RespondRequest] = None,
                          identity: Identity = Depends(get_current_user)):
            payload = payload or RespondRequest()
            incident = await self.incidents.respond(identity, incident_id, lat=payload.lat, lng=payload.lng)
            return {"incident": incident}

        @self.app.patch("/api/incidents/{incident_id}/resolve")
        async def resolve(incident_id: str, payload: Optional[ResolveIncidentRequest] = None,
                          identity: Identity = Depends(get_current_user)):
            payload = payload or ResolveIncidentRequest()
            incident = await self.incidents.resolve(identity, incident_id, note=payload.note)
            return {"incident": incident}

        # Moderation
        @self.app.post("/api/reports/flag", status_code=201)
        async def flag_report(payload: FlagReportRequest,
                              identity: Identity = Depends(get_current_user)):
            report = await self.reports.flag(identity, payload.sosId, payload.reason)
            return {"report": report.to_dict()}

        @self.app.patch("/api/reports/{report_id}/resolve")
        async def resolve_report(report_id: str, payload: Optional[ResolveReportRequest] = None,
                                 identity: Identity = Depends(require_admin)):
            payload = payload or ResolveReportRequest()
            report = await self.reports.resolve_report(
                identity, report_id,
                resolution_note=payload.resolutionNote,
                false_alert=payload.falseAlert
            )
            return {"report": report.to_dict()}

        @self.app.get("/api/admin/metrics")
        async def admin_metrics(identity: Identity = Depends(require_admin)):
            return {"metrics": self.metrics.snapshot()}

        # Guidance
        @self.app.post("/api/assist/crisis")
        async def assist(payload: Optional[CrisisAssistRequest] = None,
                         identity: Identity = Depends(get_current_user)):
            payload = payload or CrisisAssistRequest()
            return crisis_assist(payload.crisisType, payload.context)

        # Live channel
        @self.app.websocket("/ws")
        async def live_channel(websocket: WebSocket, token: Optional[str] = None):
            raw = token or websocket.headers.get("authorization")
            identity = self.verifier.try_verify(_bearer_token(raw))
            if identity is not None and self.auth.users.get(identity.user_id) is None:
                identity = None
            connection = await self.channel.connect(websocket, identity)
            try:
                while True:
                    # Inbound messages carry no meaning after the handshake
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                self.channel.disconnect(connection.id)

