"""GRC dashboard engine service.

FastAPI entry point with lifespan management, error handling, and CORS.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.router import api_router
from .config import get_config
from .database import close_engine, create_tables
from .engine.registry import DEFAULT_REGISTRY
from .middleware.error_handler import register_error_handlers
from .middleware.request_id import RequestIDMiddleware
from .utils.logging import get_logger, setup_logging

config = get_config()
setup_logging(
    debug=config.debug,
    log_dir=config.log_dir,
    log_max_bytes=config.log_max_bytes,
    log_backup_count=config.log_backup_count,
)
logger = get_logger("grcdash.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("grcdash_starting", host=config.host, port=config.port, sections=len(DEFAULT_REGISTRY.keys))

    await create_tables(config)

    yield

    await close_engine()
    logger.info("grcdash_stopped")


app = FastAPI(
    title="GRCDASH",
    description="Governance, risk and compliance dashboard engine",
    version=__version__,
    lifespan=lifespan,
)

# Register standard error handlers
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in config.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "X-User-Id", "X-User-Role", "X-Request-ID"],
)

# Request ID: added LAST so it runs FIRST
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)


@app.get("/health")
async def health():
    """Liveness check."""
    return {
        "status": "ok",
        "name": config.app_name,
        "version": __version__,
        "sections": len(DEFAULT_REGISTRY.keys),
    }


def main():
    """Run the dashboard service."""
    uvicorn.run(
        "grcdash.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
