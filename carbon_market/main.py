"""Application entrypoint for the carbon market FastAPI backend."""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from carbon_market.api.errors import register_exception_handlers
from carbon_market.api.router import build_router
from carbon_market.core import AppSettings, get_logger, load_settings, setup_logging
from carbon_market.repositories import DocumentStore
from carbon_market.services.collateral_verifier import CollateralVerifier


logger = get_logger(__name__)


def create_app(
    settings: Optional[AppSettings] = None,
    store: Optional[DocumentStore] = None,
    collateral_verifier: Optional[CollateralVerifier] = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app, settings)
    app.include_router(build_router(settings, store=store, collateral_verifier=collateral_verifier))

    logger.info("Application initialized: %s environment=%s", settings.app_name, settings.environment)
    return app


def run() -> None:
    """Start the ASGI server for local development."""
    settings = load_settings()
    setup_logging(settings.log_level)
    try:
        uvicorn.run(
            "carbon_market.main:create_app",
            factory=True,
            host=settings.host,
            port=settings.port,
            reload=settings.debug,
        )
    except Exception:
        logger.exception("Failed to start uvicorn server.")
        raise


if __name__ == "__main__":
    run()
