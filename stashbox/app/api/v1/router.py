# stashbox/app/api/v1/router.py
from fastapi import APIRouter
from stashbox.app.api.v1.endpoints import collections, drops, secrets, trash

api_router = APIRouter()
api_router.include_router(secrets.router, prefix="/secrets", tags=["secrets"])
api_router.include_router(drops.router, prefix="/drop", tags=["drop"])
# Public routes: the drop routes are registered first so "drop" is never taken for a kind
api_router.include_router(drops.public_router, prefix="/public/drop", tags=["public"])
api_router.include_router(collections.public_router, prefix="/public", tags=["public"])
api_router.include_router(collections.router, prefix="/collections", tags=["collections"])
api_router.include_router(collections.items_router, prefix="/items", tags=["items"])
api_router.include_router(trash.router, prefix="/trash", tags=["trash"])
