# app/main.py

import asyncio
from contextlib import asynccontextmanager

import aiohttp
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.dependencies import build_container
from app.utils.logger import setup_app_logging, get_logger
# Local application imports - Routes
from app.esign.router import router as esign_routes
from app.auth.router import router as admin_routes
from app.audit_trail.router import router as audit_trail_routes


async def keepalive(url: str, interval_seconds: int):
    """
    Ping our own /health so the hosting platform does not idle the service
    """
    timeout = aiohttp.ClientTimeout(total=30)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    logger.info("keepalive_ping", status=response.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("keepalive_ping_failed", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the ledger, clients and services; cancel detached work on shutdown
    """
    container = build_container(settings)
    app.state.container = container

    if settings.is_production:
        container.runner.spawn(
            keepalive(f"{settings.public_base_url.rstrip('/')}/health", settings.keepalive_interval_seconds),
            name="keepalive",
        )

    logger.info(
        "server_started",
        public_url=settings.public_base_url,
        ledger=str(settings.ledger_path),
        tracked_agreements=len(container.ledger.list()),
    )
    yield
    await container.runner.shutdown()


# Create the FastAPI app
signature_app = FastAPI(
    title=f"Signature Orchestrator - {settings.environment}",
    description="Content Server to Adobe Sign signature orchestration",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure logging
setup_app_logging(
    signature_app,
    log_level=settings.log_level,
    use_json=settings.is_production,
    log_file=str(settings.log_path),
    app_name="Signature Orchestrator",
    environment=settings.environment,
)
logger = get_logger(__name__)

# Add CORS middleware
signature_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_cors_urls.split(","),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
signature_app.include_router(esign_routes)
signature_app.include_router(admin_routes)
signature_app.include_router(audit_trail_routes)


@signature_app.get("/health", tags=["Base"])
async def health_check():
    """
    Liveness probe
    """
    return {"status": "ok"}
