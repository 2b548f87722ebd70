import logging
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from maps_auth.core.config import AuthTier, Settings
from maps_auth.core.security import get_session_user

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(include_in_schema=False)


def map_element_context(settings: Settings) -> Dict[str, str]:
    """Data attribute the browser uses to pick its Azure Maps auth strategy."""
    if settings.MAPS_AUTH_TIER is AuthTier.KEY:
        return {"auth_attribute": "data-auth-key", "auth_value": settings.maps.subscription_key}
    return {"auth_attribute": "data-auth-clientid", "auth_value": settings.maps.client_id}


def _page_context(request: Request) -> Dict[str, Any]:
    settings: Settings = request.app.state.settings
    return {
        "tier": settings.MAPS_AUTH_TIER.value,
        "user": get_session_user(request),
    }


@router.get("/", response_class=HTMLResponse, name="index")
async def index(request: Request):
    settings: Settings = request.app.state.settings
    if settings.MAPS_AUTH_TIER is AuthTier.ENTERPRISE and not get_session_user(request):
        return RedirectResponse(request.url_for("signin"), status_code=status.HTTP_302_FOUND)
    context = _page_context(request)
    context.update(map_element_context(settings))
    if not context["auth_value"]:
        logger.warning(f"Rendering map page without a value for {context['auth_attribute']}")
    return templates.TemplateResponse(request, "index.html", context)


@router.get("/privacy", response_class=HTMLResponse, name="privacy")
async def privacy(request: Request):
    return templates.TemplateResponse(request, "privacy.html", _page_context(request))
