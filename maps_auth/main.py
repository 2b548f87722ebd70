import logging
import secrets
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from maps_auth.api import pages
from maps_auth.api.v1 import api_router
from maps_auth.core.config import AuthTier, Settings, get_settings
from maps_auth.core.credentials import MapsTokenProvider
from maps_auth.core.security import require_signed_in_user
from maps_auth.core.signin import build_signin_router

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    token_provider: Optional[MapsTokenProvider] = None,
) -> FastAPI:
    """
    Builds the web app for the configured tier.

    The token provider is created once here and shared by every request; pass
    one in to substitute the credential (tests do this).
    """
    settings = settings or get_settings()
    tier = settings.MAPS_AUTH_TIER
    if token_provider is None:
        token_provider = MapsTokenProvider.from_managed_identity(settings.maps.managed_identity_client_id)

    app = FastAPI(
        title=f"Azure Maps {tier.value.capitalize()} Authentication Sample",
        description="Serves an Azure Maps page and issues Azure Maps tokens from the app's managed identity.",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.token_provider = token_provider

    api_dependencies = []
    if tier is AuthTier.ENTERPRISE:
        session_secret = settings.SESSION_SECRET_KEY
        if not session_secret:
            logger.warning("SESSION_SECRET_KEY is not set; sessions will not survive a restart.")
            session_secret = secrets.token_urlsafe(32)
        app.add_middleware(SessionMiddleware, secret_key=session_secret, https_only=settings.SESSION_HTTPS_ONLY, same_site="lax")
        app.include_router(build_signin_router(settings.identity))
        api_dependencies.append(Depends(require_signed_in_user))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception for request {request.url}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"message": "An unexpected internal server error occurred.", "detail": str(exc)},
        )

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Azure Maps sample starting up in '{tier.value}' tier...")
        for key in settings.missing_options():
            logger.warning(f"Configuration value '{key}' is missing. The map will not initialize.")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Azure Maps sample shutting down...")
        app.state.token_provider.close()

    app.include_router(api_router, prefix="/api", dependencies=api_dependencies)
    app.include_router(pages.router)
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
    return app


def get_app() -> FastAPI:
    """Factory for ``uvicorn --factory maps_auth.main:get_app``."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    return create_app(settings)
