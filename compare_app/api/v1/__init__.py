"""API v1 package."""

from fastapi import APIRouter

from compare_app.api.v1.endpoints import compare, comparisons

api_router = APIRouter()

api_router.include_router(compare.router, tags=["Compare"])
api_router.include_router(comparisons.router, prefix="/comparisons", tags=["Comparisons"])
