from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from dental_crm.api.errors import install_error_handlers
from dental_crm.api.routes.activity import communications_router, goals_router, schedule_router
from dental_crm.api.routes.auth import router as auth_router
from dental_crm.api.routes.clients import router as clients_router
from dental_crm.api.routes.dashboard import router as dashboard_router
from dental_crm.api.routes.dispatch import deliveries_router, router as dispatch_router
from dental_crm.api.routes.geo import router as geo_router
from dental_crm.api.routes.quotations import router as quotations_router
from dental_crm.api.routes.realtime import info_router, ws_router
from dental_crm.api.routes.reports import router as reports_router
from dental_crm.api.routes.roles import router as roles_router
from dental_crm.api.routes.users import router as users_router
from dental_crm.api.routes.visits import router as visits_router
from dental_crm.core.logging import acting_as_var, configure_logging, correlation_id_var, user_id_var
from dental_crm.core.settings import AppSettings, get_app_settings
from dental_crm.db.run_migrations import main as run_alembic
from dental_crm.db.seed import seed_all
from dental_crm.db.session import dispose_engine
from dental_crm.schemas.common import MessageResponse

configure_logging()
logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Health", "description": "Liveness check."},
    {"name": "Auth", "description": "Login, token refresh and the caller's effective access."},
    {"name": "Users", "description": "Profiles: invite, role, status."},
    {"name": "Roles", "description": "Role and permission matrix."},
    {"name": "Clients", "description": "Client master data, CSV import and geofence check."},
    {"name": "Geo", "description": "Address geocoding."},
    {"name": "Visits", "description": "Field visit check-in and check-out."},
    {"name": "Quotations", "description": "Quotations: totals, PDF and e-mail."},
    {"name": "Dispatch", "description": "Order matching, route optimisation and route creation."},
    {"name": "Deliveries", "description": "Driver routes and stop updates."},
    {"name": "Dashboard", "description": "Seller and team metrics."},
    {"name": "Schedule", "description": "Tasks and Google Calendar."},
    {"name": "Communications", "description": "Call log and Gmail."},
    {"name": "Goals", "description": "Monthly sales goals."},
    {"name": "Reports", "description": "CSV, Excel and PDF exports."},
    {"name": "WebSocket", "description": "Realtime change feeds."},
]

DOMAIN_ROUTERS = (
    auth_router,
    users_router,
    roles_router,
    clients_router,
    geo_router,
    visits_router,
    quotations_router,
    dispatch_router,
    deliveries_router,
    dashboard_router,
    schedule_router,
    communications_router,
    goals_router,
    reports_router,
    info_router,
)


async def _prepare_database(settings: AppSettings) -> None:
    """Migrate and optionally seed. Failures are logged and the API keeps serving."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            # env.py runs its own event loop
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Database schema is at head")
        except Exception:
            logger.exception("alembic upgrade failed")
    if settings.AUTO_SEED:
        try:
            await seed_all()
        except Exception:
            logger.exception("Seeding failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await _prepare_database(app.state.settings)
    yield
    await dispose_engine()


def _add_cors(app: FastAPI, settings: AppSettings) -> None:
    allow_credentials = settings.CORS_ALLOW_CREDENTIALS
    if allow_credentials and "*" in settings.CORS_ORIGINS:
        logger.warning("Wildcard CORS origin cannot carry credentials; CORS_ALLOW_CREDENTIALS ignored")
        allow_credentials = False
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=allow_credentials,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )


async def request_context_middleware(request: Request, call_next):
    """
    Bind a correlation id (from X-Correlation-ID / X-Request-ID or a new uuid4)
    to the request's log records and echo it back in X-Correlation-ID.
    The user and impersonation context vars are cleared per request; the auth
    dependencies fill them in.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    request.state.correlation_id = corr
    tokens = (correlation_id_var.set(corr), user_id_var.set(None), acting_as_var.set(None))
    logger.info("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        for var, token in zip((correlation_id_var, user_id_var, acting_as_var), tokens):
            var.reset(token)
    response.headers["X-Correlation-ID"] = corr
    return response


# PUBLIC_INTERFACE
def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the API: middleware, error envelope, /api/v1 routers and the /ws feeds."""
    settings = settings or get_app_settings()
    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
    )
    app.state.settings = settings

    _add_cors(app, settings)
    app.middleware("http")(request_context_middleware)
    install_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")

    @api_v1.get("/health", response_model=MessageResponse, summary="Health check", tags=["Health"])
    def health_check() -> MessageResponse:
        return MessageResponse(message="Healthy")

    for router in DOMAIN_ROUTERS:
        api_v1.include_router(router)
    app.include_router(api_v1)
    app.include_router(ws_router)
    return app


app = create_app()
