import logging
from typing import Any, Dict, Union
from urllib.parse import quote

import msal
from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from maps_auth.core.config import AadConfig
from maps_auth.core.security import SESSION_USER_KEY

logger = logging.getLogger(__name__)

AUTH_FLOW_KEY = "auth_flow"

# Claims kept in the session cookie; the full ID token is not needed.
SESSION_CLAIMS = ("name", "preferred_username", "oid", "tid", "sub")


def build_msal_app(identity: AadConfig) -> Union[msal.ConfidentialClientApplication, msal.PublicClientApplication]:
    if identity.client_secret:
        return msal.ConfidentialClientApplication(
            identity.client_id,
            client_credential=identity.client_secret,
            authority=identity.authority,
        )
    return msal.PublicClientApplication(identity.client_id, authority=identity.authority)


def build_signin_router(identity: AadConfig) -> APIRouter:
    """Routes for the Microsoft Entra ID authorization code flow."""
    router = APIRouter(tags=["sign-in"])

    def signin(request: Request):
        if not identity.client_id:
            logger.warning("Identity:ClientId is not configured; sign-in is unavailable.")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Sign-in is not configured",
            )
        flow = build_msal_app(identity).initiate_auth_code_flow(
            [], redirect_uri=str(request.url_for("signin_callback"))
        )
        if "error" in flow:
            logger.error(f"Could not start sign-in: {flow.get('error_description', flow['error'])}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=flow.get("error_description", flow["error"]),
            )
        request.session[AUTH_FLOW_KEY] = flow
        return RedirectResponse(flow["auth_uri"], status_code=status.HTTP_302_FOUND)

    def signin_callback(request: Request):
        flow = request.session.pop(AUTH_FLOW_KEY, None)
        if not flow:
            logger.warning("Sign-in callback without a pending flow in the session; restarting sign-in.")
            return RedirectResponse(request.url_for("signin"), status_code=status.HTTP_302_FOUND)
        try:
            result: Dict[str, Any] = build_msal_app(identity).acquire_token_by_auth_code_flow(
                flow, dict(request.query_params)
            )
        except ValueError as e:  # state mismatch, usually CSRF or a stale tab
            logger.warning(f"Rejected sign-in response: {e}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid sign-in response")
        if "error" in result:
            logger.warning(f"Sign-in failed: {result.get('error')} - {result.get('error_description')}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=result.get("error_description") or result["error"],
            )
        claims = result.get("id_token_claims", {})
        request.session[SESSION_USER_KEY] = {k: claims[k] for k in SESSION_CLAIMS if k in claims}
        logger.info(f"User signed in: {claims.get('preferred_username') or claims.get('sub')}")
        return RedirectResponse(request.url_for("index"), status_code=status.HTTP_302_FOUND)

    def signout(request: Request):
        request.session.clear()
        homepage = quote(str(request.url_for("index")), safe="")
        return RedirectResponse(
            f"{identity.authority}/oauth2/v2.0/logout?post_logout_redirect_uri={homepage}",
            status_code=status.HTTP_302_FOUND,
        )

    router.add_api_route("/signin", signin, methods=["GET"], name="signin")
    router.add_api_route(identity.callback_path, signin_callback, methods=["GET"], name="signin_callback")
    router.add_api_route("/signout", signout, methods=["GET"], name="signout")
    return router
