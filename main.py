"""Sweeper - sweep SPL token balances into one token and reclaim rent."""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import load_config
from utils.logging import setup_logging
from services.api_router import router as api_router, register_error_handlers
from services.clients import build_clients


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Sweeper...")

    yield

    logger.info("Shutting down Sweeper...")

    # Close clients
    if hasattr(app.state, "jupiter"):
        await app.state.jupiter.close()
    if hasattr(app.state, "solana"):
        await app.state.solana.close()


def create_app(config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    if config is None:
        config = load_config()

        log_config = config.get("logging", {})
        setup_logging(
            log_dir=log_config.get("dir", "./logs"),
            level=log_config.get("level", "INFO"),
        )
        logger.info("Configuration loaded")

    solana, jupiter = build_clients(config)

    app = FastAPI(
        title="Sweeper",
        description="Sweep SPL token balances into a single token and reclaim rent",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.solana = solana
    app.state.jupiter = jupiter

    register_error_handlers(app)
    app.include_router(api_router, tags=["sweeper"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "sweeper",
            "version": "0.1.0",
            "rpc_endpoints": len(solana.rotator),
        }

    logger.info("Sweeper initialized")

    return app


if __name__ == "__main__":
    import uvicorn

    server_config = load_config().get("server", {})
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=server_config.get("host", "0.0.0.0"),
        port=int(server_config.get("port", 4201)),
    )
