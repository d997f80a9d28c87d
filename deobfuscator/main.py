"""
Stream Deobfuscation API - FastAPI application entry point.

Turns YouTube streaming formats (url or signatureCipher) into playable urls
by evaluating the signature and 'n' throttling rules of the player script.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routes.api import router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    logger.info("Stream Deobfuscation API starting up...")

    settings = get_settings()
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"EJS mode: {settings.use_ejs}, mobile web: {settings.use_mobile_web}")

    from .core.streaming import get_deobfuscator
    from .core.threads import shutdown_background_executor

    service = get_deobfuscator()

    warmup = None
    if settings.preload_player_js:
        # Downloading the player scripts takes a few seconds; don't block startup.
        warmup = asyncio.get_running_loop().run_in_executor(None, service.initialize_javascript)

    yield

    logger.info("Stream Deobfuscation API shutting down...")
    if warmup is not None and not warmup.done():
        warmup.cancel()
    service.close()
    shutdown_background_executor()


app = FastAPI(
    title="Stream Deobfuscation API",
    description=(
        "Deobfuscates YouTube streaming urls: rebuilds urls from signatureCipher "
        "and replaces the 'n' throttling parameter using the rules of the "
        "player JavaScript."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: use CORS_ORIGINS env (comma-separated) for explicit origins; empty = "*" without credentials (safe default)
_origins = [o.strip() for o in get_settings().cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins if _origins else ["*"],
    allow_credentials=bool(_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api")


@app.get("/", tags=["root"])
async def root():
    return {
        "name": "Stream Deobfuscation API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "deobfuscate": "/api/deobfuscate",
            "streaming_data": "/api/streaming-data",
            "player": "/api/player/{client}",
            "reset": "/api/reset",
            "health": "/api/health",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "deobfuscator.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
