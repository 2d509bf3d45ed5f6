import logging
from contextlib import asynccontextmanager
from pathlib import Path

import socketio
from fastapi import FastAPI, Response, status
from fastapi.staticfiles import StaticFiles

from helpdesk_relay.attachments import AttachmentStore
from helpdesk_relay.config import settings
from helpdesk_relay.logging_utils import RequestLoggingMiddleware, setup_logging
from helpdesk_relay.metrics import get_metrics, get_metrics_content_type
from helpdesk_relay.relay import Relay
from helpdesk_relay.repository import Repository
from helpdesk_relay.schemas import HealthResponse
from helpdesk_relay.storage import check_db_health, init_db


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


# =============================================================================
# Socket.IO Relay
# =============================================================================

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins,
    ping_timeout=60,
    ping_interval=25,
    logger=False,
    engineio_logger=False,
)

relay = Relay.create(
    sio,
    repository=Repository(),
    attachment_store=AttachmentStore(settings.UPLOADS_DIR, settings.UPLOADS_URL_PREFIX),
    jwt_secret=settings.JWT_SECRET,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    - Startup: create tables, warn about the development JWT secret
    - Shutdown: nothing to release, socket rooms die with their connections
    """
    init_db()
    if settings.uses_insecure_secret:
        logger.warning("JWT_SECRET is using the insecure default; set it before running in production")
    yield


app = FastAPI(
    title="Helpdesk Realtime Relay",
    description="Socket.IO relay for live chat, ticket messages and agent notifications",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.relay = relay

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    relay tables exist. Otherwise returns 503.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


# =============================================================================
# Uploaded Attachments
# =============================================================================

Path(settings.UPLOADS_DIR).mkdir(parents=True, exist_ok=True)
app.mount(settings.UPLOADS_URL_PREFIX, StaticFiles(directory=settings.UPLOADS_DIR), name="uploads")


# Entry point for uvicorn: Socket.IO traffic on SOCKETIO_PATH, everything else to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.SOCKETIO_PATH)
