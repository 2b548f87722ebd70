from fastapi import APIRouter

from maps_auth.api.v1.endpoints import token

api_router = APIRouter()
api_router.include_router(token.router, tags=["token"])
