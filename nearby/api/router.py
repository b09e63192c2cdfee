from fastapi import APIRouter

from nearby.api.routes import admin, matches, presence, proposals, users

api_router = APIRouter(prefix="/v1")

api_router.include_router(users.router)
api_router.include_router(presence.router, tags=["presence"])
api_router.include_router(proposals.router)
api_router.include_router(matches.router)
api_router.include_router(admin.router)
