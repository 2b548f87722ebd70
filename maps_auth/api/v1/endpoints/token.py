import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from maps_auth.core.credentials import MapsTokenProvider
from maps_auth.models.token import ProblemDetails

logger = logging.getLogger(__name__)
router = APIRouter()

TOKEN_FAILURE_TITLE = "Failed to acquire Azure Maps token"


def get_token_provider(request: Request) -> MapsTokenProvider:
    """The provider is built once in create_app and shared by every request."""
    return request.app.state.token_provider


@router.get(
    "/token",
    response_class=PlainTextResponse,
    responses={500: {"model": ProblemDetails, "content": {"application/problem+json": {}}}},
    summary="Issue an Azure Maps bearer token",
)
@router.get("/GetAzureMapsToken", response_class=PlainTextResponse, include_in_schema=False)
def get_azure_maps_token(provider: MapsTokenProvider = Depends(get_token_provider)):
    """
    Returns a bearer token for the Azure Maps Web SDK as plain text.

    The token comes from the application's managed identity, so the Azure RBAC
    role for Azure Maps must be assigned to that identity.
    """
    try:
        token = provider.get_token()
    except Exception as e:
        logger.error(f"{TOKEN_FAILURE_TITLE}: {e}")
        problem = ProblemDetails(
            title=TOKEN_FAILURE_TITLE,
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=problem.model_dump(),
            media_type="application/problem+json",
        )
    return PlainTextResponse(token)
