"""
Agent Gateway - FastAPI Application
Main entry point for the API server
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
import uvicorn
import structlog
import logging
from contextlib import asynccontextmanager

from agent_gateway import __version__
from agent_gateway.database.connection import init_database
from agent_gateway.api.routes import devices, health, ingest, pairing, projects, screenshots, timer
from agent_gateway.collectors.stale_entry_sweeper import StaleEntrySweeper
from agent_gateway.core.config import settings
from agent_gateway.core.exceptions import AgentGatewayError, InvalidRequest
from agent_gateway.services.credentials import get_credential_issuer

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Agent Gateway API")
    await init_database()
    # Build the issuer up front so a missing signing secret is reported at startup
    get_credential_issuer()
    sweeper = StaleEntrySweeper() if settings.stale_sweep_enabled else None
    if sweeper:
        await sweeper.start()
    yield
    if sweeper:
        await sweeper.stop()
    logger.info("Shutting down Agent Gateway API")


# Create FastAPI application
app = FastAPI(
    title="Agent Gateway API",
    description="Desktop agent pairing, short-lived credentials, activity ingestion and time tracking",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie=settings.session_cookie,
    https_only=not settings.debug,
)

# Include routers
app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(pairing.router, prefix=settings.api_prefix, tags=["pairing"])
app.include_router(devices.router, prefix=settings.api_prefix, tags=["devices"])
app.include_router(ingest.router, prefix=settings.api_prefix, tags=["ingestion"])
app.include_router(screenshots.router, prefix=settings.api_prefix, tags=["screenshots"])
app.include_router(timer.agent_router, prefix=settings.api_prefix, tags=["timer"])
app.include_router(timer.web_router, prefix=settings.api_prefix, tags=["timer"])
app.include_router(projects.router, prefix=settings.api_prefix, tags=["projects"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Agent Gateway API",
        "version": __version__,
        "docs": "/docs",
        "health": f"{settings.api_prefix}/health"
    }


@app.exception_handler(AgentGatewayError)
async def agent_gateway_error_handler(request: Request, exc: AgentGatewayError):
    """Domain errors carry their own status and machine-readable code"""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("Request rejected", path=request.url.path, code=exc.code, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed payloads get the same body shape as every other caller input error"""
    logger.info("Request validation failed", path=request.url.path, error_count=len(exc.errors()))
    body = InvalidRequest("Request validation failed", errors=jsonable_encoder(exc.errors())).to_dict()
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    uvicorn.run(
        "agent_gateway.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
